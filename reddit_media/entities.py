from __future__ import annotations

from concurrent.futures import Executor, Future, ThreadPoolExecutor
from enum import Enum
from threading import Event, Lock
from types import MappingProxyType
from typing import Any, Callable, Mapping, Protocol
from urllib.parse import quote

import requests

from .config_schema import RedditConfig
from .errors import EntityFetchError
from .event_log import EventLogger
from .http_json import get_json


class EntityKind(str, Enum):
    SUBREDDIT = "subreddit"
    POST = "post"
    COMMENT = "comment"
    USER = "user"


class EntityState(str, Enum):
    UNPOPULATED = "unpopulated"
    POPULATED = "populated"


EntityCallback = Callable[["RemoteEntity"], None]


class RemoteEntity:
    """
    A Reddit entity known by identifier whose full data arrives later.

    The cell starts unpopulated. A background fetch either populates it (bumping
    `version`) or leaves it unpopulated; both settle it, which releases `wait()`
    and notifies subscribers. Equality and hashing use (kind, identifier) only.
    """

    def __init__(self, kind: EntityKind, identifier: str) -> None:
        self._kind = EntityKind(kind)
        self._identifier = identifier
        self._lock = Lock()
        self._settled = Event()
        self._data: Mapping[str, Any] | None = None
        self._version = 0
        self._subscribers: list[EntityCallback] = []

    @property
    def kind(self) -> EntityKind:
        return self._kind

    @property
    def identifier(self) -> str:
        return self._identifier

    @property
    def state(self) -> EntityState:
        with self._lock:
            return EntityState.POPULATED if self._data is not None else EntityState.UNPOPULATED

    @property
    def data(self) -> Mapping[str, Any] | None:
        with self._lock:
            return self._data

    @property
    def version(self) -> int:
        with self._lock:
            return self._version

    @property
    def settled(self) -> bool:
        return self._settled.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the pending fetch settles; False on timeout."""
        return self._settled.wait(timeout)

    def subscribe(self, callback: EntityCallback) -> None:
        """
        Register a callback fired whenever the cell settles or is updated.

        Fires immediately when the cell has already settled.
        """
        with self._lock:
            self._subscribers.append(callback)
            already = self._settled.is_set()
        if already:
            callback(self)

    def populate(self, data: Mapping[str, Any]) -> None:
        with self._lock:
            self._data = MappingProxyType(dict(data))
            self._version += 1
            subscribers = list(self._subscribers)
        self._settled.set()
        for cb in subscribers:
            cb(self)

    def settle_unpopulated(self) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        self._settled.set()
        for cb in subscribers:
            cb(self)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RemoteEntity):
            return NotImplemented
        return (self._kind, self._identifier) == (other._kind, other._identifier)

    def __hash__(self) -> int:
        return hash((self._kind, self._identifier))

    def __repr__(self) -> str:
        return (
            f"RemoteEntity(kind={self._kind.value!r}, identifier={self._identifier!r}, "
            f"state={self.state.value!r}, version={self.version})"
        )


class EntityFetcher(Protocol):
    def fetch(self, entity: RemoteEntity) -> Mapping[str, Any]: ...


def _thing_data(payload: Any, *, expected_kind: str) -> Mapping[str, Any] | None:
    if not isinstance(payload, Mapping) or payload.get("kind") != expected_kind:
        return None
    data = payload.get("data")
    return data if isinstance(data, Mapping) else None


def _first_listing_child(payload: Any, *, expected_kind: str) -> Mapping[str, Any] | None:
    listing = _thing_data(payload, expected_kind="Listing")
    if listing is None:
        return None
    children = listing.get("children")
    if not isinstance(children, list) or not children:
        return None
    return _thing_data(children[0], expected_kind=expected_kind)


class RedditEntityFetcher:
    """
    Fetches subreddits, posts, comments and users from Reddit's public JSON endpoints.
    """

    def __init__(self, reddit: RedditConfig, *, session: requests.Session | None = None) -> None:
        self._cfg = reddit
        self._session = session or requests.Session()

    def fetch(self, entity: RemoteEntity) -> Mapping[str, Any]:
        base = self._cfg.base_url
        ident = quote(entity.identifier, safe="")

        params: dict[str, str] | None = None
        if entity.kind is EntityKind.SUBREDDIT:
            url = f"{base}/r/{ident}/about.json"
        elif entity.kind is EntityKind.USER:
            url = f"{base}/user/{ident}/about.json"
        elif entity.kind is EntityKind.POST:
            url = f"{base}/api/info.json"
            params = {"id": f"t3_{entity.identifier}"}
        else:
            url = f"{base}/api/info.json"
            params = {"id": f"t1_{entity.identifier}"}

        try:
            payload = get_json(
                self._session,
                url,
                params=params,
                headers={"User-Agent": self._cfg.user_agent, "Accept": "application/json"},
                timeout=self._cfg.timeout_secs,
            )
        except requests.RequestException as e:
            raise EntityFetchError(
                f"Failed to fetch {entity.kind.value} {entity.identifier}: {e}"
            ) from e
        except ValueError as e:
            raise EntityFetchError(
                f"Invalid JSON for {entity.kind.value} {entity.identifier}: {e}"
            ) from e

        if entity.kind is EntityKind.SUBREDDIT:
            data = _thing_data(payload, expected_kind="t5")
        elif entity.kind is EntityKind.USER:
            data = _thing_data(payload, expected_kind="t2")
        elif entity.kind is EntityKind.POST:
            data = _first_listing_child(payload, expected_kind="t3")
        else:
            data = _first_listing_child(payload, expected_kind="t1")

        if data is None:
            raise EntityFetchError(
                f"Unexpected response shape for {entity.kind.value} {entity.identifier}"
            )
        return data


class EntitySelfFetcher:
    """
    Runs fire-and-forget entity fetches on a worker pool.

    Fetch failures are logged and swallowed; the entity simply stays unpopulated.
    """

    def __init__(
        self,
        fetcher: EntityFetcher,
        *,
        max_workers: int = 4,
        executor: Executor | None = None,
        logger: EventLogger | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="entity-self-fetch"
        )
        self._logger = logger

    def spawn(self, entity: RemoteEntity) -> Future[None] | None:
        """
        Queue a background fetch. Returns None when the pool no longer accepts work;
        the entity is then settled unpopulated.
        """
        try:
            return self._executor.submit(self._run, entity)
        except RuntimeError as e:
            if self._logger is not None:
                self._logger.exception(
                    "entity_self_fetch_rejected",
                    exc=e,
                    level="WARN",
                    kind=entity.kind.value,
                    identifier=entity.identifier,
                )
            entity.settle_unpopulated()
            return None

    def _run(self, entity: RemoteEntity) -> None:
        try:
            data = self._fetcher.fetch(entity)
        except Exception as e:
            if self._logger is not None:
                self._logger.exception(
                    "entity_self_fetch_failed",
                    exc=e,
                    level="WARN",
                    kind=entity.kind.value,
                    identifier=entity.identifier,
                )
            entity.settle_unpopulated()
            return

        entity.populate(data)
        if self._logger is not None:
            self._logger.debug(
                "entity_self_fetch_completed",
                kind=entity.kind.value,
                identifier=entity.identifier,
            )

    def shutdown(self, *, wait: bool = True) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=wait)

    def __enter__(self) -> "EntitySelfFetcher":
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.shutdown()
