from __future__ import annotations

import base64
import json
from concurrent.futures import Future
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Callable, Mapping
from urllib.parse import quote

import requests

from .config_schema import RedgifsConfig
from .errors import AuthError, MediaFetchError
from .event_log import EventLogger
from .http_json import get_json, status_code_of

NowFn = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _request_headers(cfg: RedgifsConfig) -> dict[str, str]:
    # requests' defaults supply User-Agent and Accept-Encoding.
    headers = dict(requests.utils.default_headers())
    headers["Accept"] = "application/json"
    headers["Accept-Language"] = cfg.accept_language
    if cfg.user_agent:
        headers["User-Agent"] = cfg.user_agent
    return headers


def token_expiry(token: str) -> datetime | None:
    """
    Read the `exp` claim (epoch seconds) from a JWT-shaped token.

    Returns None when the token is not three dot-separated parts, the middle part is
    not base64 JSON, or `exp` is missing or not a number.
    """
    parts = (token or "").split(".")
    if len(parts) != 3:
        return None

    segment = parts[1]
    try:
        raw = base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4))
        claims = json.loads(raw)
    except ValueError:
        return None

    if not isinstance(claims, dict):
        return None
    exp = claims.get("exp")
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        return None

    try:
        return datetime.fromtimestamp(exp, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


class RedgifsTokenClient:
    """
    Holds the short-lived Redgifs bearer token.

    A missing token, or one whose expiry has passed, triggers one synchronous refresh
    on the next get_token(). Only one refresh is in flight at a time: concurrent
    callers wait on it and share its outcome, including its AuthError when it fails.
    Nothing is retried here.
    """

    def __init__(
        self,
        redgifs: RedgifsConfig | None = None,
        *,
        session: requests.Session | None = None,
        now_fn: NowFn | None = None,
        logger: EventLogger | None = None,
    ) -> None:
        self._cfg = redgifs or RedgifsConfig()
        self._session = session or requests.Session()
        self._now = now_fn or _utc_now
        self._logger = logger
        self._lock = Lock()
        self._token: str | None = None
        self._expiry: datetime | None = None
        self._inflight: Future[str] | None = None

    @property
    def token(self) -> str | None:
        with self._lock:
            return self._token

    @property
    def expiry(self) -> datetime | None:
        with self._lock:
            return self._expiry

    def get_token(self) -> str:
        return self._join_refresh(force=False)

    def refresh_token(self) -> str:
        """Fetch a new token even if the cached one is still valid."""
        return self._join_refresh(force=True)

    def invalidate(self) -> None:
        """Drop the cached token so the next get_token() fetches a new one."""
        with self._lock:
            self._token = None
            self._expiry = None

    def _expired(self) -> bool:
        return self._expiry is not None and self._now() > self._expiry

    def _join_refresh(self, *, force: bool) -> str:
        with self._lock:
            if not force and self._token is not None and not self._expired():
                return self._token
            flight = self._inflight
            owner = flight is None
            if flight is None:
                flight = self._inflight = Future()

        if owner:
            self._run_refresh(flight)
        return flight.result()

    def _run_refresh(self, flight: Future[str]) -> None:
        try:
            token, expiry = self._fetch_token()
        except Exception as e:
            with self._lock:
                self._inflight = None
            flight.set_exception(e)
            return

        with self._lock:
            self._token = token
            self._expiry = expiry
            self._inflight = None
        flight.set_result(token)

    def _fetch_token(self) -> tuple[str, datetime | None]:
        url = self._cfg.auth_url
        try:
            payload = get_json(
                self._session,
                url,
                headers=_request_headers(self._cfg),
                timeout=self._cfg.timeout_secs,
            )
        except requests.RequestException as e:
            raise AuthError(f"Redgifs token request failed: {e}") from e
        except ValueError as e:
            raise AuthError(f"Redgifs token response is not valid JSON: {e}") from e

        token = payload.get("token") if isinstance(payload, Mapping) else None
        if not isinstance(token, str) or not token.strip():
            raise AuthError("Redgifs token response is missing a token")

        expiry = token_expiry(token)
        if self._logger is not None:
            self._logger.info(
                "redgifs_token_refreshed",
                url=url,
                expiry=expiry.isoformat() if expiry else None,
            )
        return token, expiry


_shared_lock = Lock()
_shared_client: RedgifsTokenClient | None = None


def shared_token_client(redgifs: RedgifsConfig | None = None) -> RedgifsTokenClient:
    """
    The process-wide token client. The config only applies to the first call.
    """
    global _shared_client
    with _shared_lock:
        if _shared_client is None:
            _shared_client = RedgifsTokenClient(redgifs)
        return _shared_client


@dataclass(frozen=True)
class RedgifsGif:
    gif_id: str
    url: str
    width: int | None
    height: int | None
    username: str
    created: datetime | None


def _optional_int(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def _parse_gif(gif_id: str, payload: Any) -> RedgifsGif | None:
    if not isinstance(payload, Mapping):
        return None
    gif = payload.get("gif")
    if not isinstance(gif, Mapping):
        return None

    username = gif.get("userName")
    urls = gif.get("urls")
    if not isinstance(username, str) or not isinstance(urls, Mapping):
        return None
    hd = urls.get("hd")
    if not isinstance(hd, str) or not hd.strip():
        return None

    created: datetime | None = None
    created_raw = _optional_int(gif.get("createDate"))
    if created_raw is not None:
        try:
            created = datetime.fromtimestamp(created_raw, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            created = None

    return RedgifsGif(
        gif_id=gif_id,
        url=hd.strip(),
        width=_optional_int(gif.get("width")),
        height=_optional_int(gif.get("height")),
        username=username,
        created=created,
    )


class RedgifsClient:
    """
    Looks up playable video details for a Redgifs id using the bearer token.

    A 401 drops the cached token before raising so the caller's next attempt
    fetches a fresh one.
    """

    def __init__(
        self,
        tokens: RedgifsTokenClient,
        redgifs: RedgifsConfig | None = None,
        *,
        session: requests.Session | None = None,
        logger: EventLogger | None = None,
    ) -> None:
        self._tokens = tokens
        self._cfg = redgifs or RedgifsConfig()
        self._session = session or requests.Session()
        self._logger = logger

    def fetch_gif(self, gif_id: str) -> RedgifsGif:
        gid = (gif_id or "").strip()
        if not gid:
            raise MediaFetchError("gif_id must be a non-empty string")

        token = self._tokens.get_token()
        headers = _request_headers(self._cfg)
        headers["Authorization"] = f"Bearer {token}"
        url = f"{self._cfg.api_base}/gifs/{quote(gid, safe='')}"

        try:
            payload = get_json(
                self._session, url, headers=headers, timeout=self._cfg.timeout_secs
            )
        except requests.RequestException as e:
            if status_code_of(e) == 401:
                self._tokens.invalidate()
            raise MediaFetchError(f"Redgifs lookup failed ({gid}): {e}") from e
        except ValueError as e:
            raise MediaFetchError(f"Redgifs response is not valid JSON ({gid}): {e}") from e

        gif = _parse_gif(gid, payload)
        if gif is None:
            raise MediaFetchError(f"Redgifs response missing gif details ({gid})")

        if self._logger is not None:
            self._logger.debug("redgifs_gif_fetched", url=url, gif_id=gid)
        return gif
