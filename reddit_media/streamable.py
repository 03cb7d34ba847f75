from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping
from urllib.parse import quote

import requests

from .config_schema import StreamableConfig
from .errors import MediaFetchError
from .event_log import EventLogger
from .http_json import get_json

# Preferred first.
_FILE_KEYS = ("mp4", "mp4-mobile")


@dataclass(frozen=True)
class StreamableVideo:
    short_code: str
    url: str
    width: int
    height: int


def _parse_file(value: Any) -> tuple[str, int, int] | None:
    if not isinstance(value, Mapping):
        return None
    url = value.get("url")
    width = value.get("width")
    height = value.get("height")
    if not isinstance(url, str) or not url.strip():
        return None
    if isinstance(width, bool) or not isinstance(width, int):
        return None
    if isinstance(height, bool) or not isinstance(height, int):
        return None

    u = url.strip()
    if u.startswith("//"):
        u = f"https:{u}"
    return u, width, height


class StreamableClient:
    """Resolves a Streamable short code to a playable MP4."""

    def __init__(
        self,
        streamable: StreamableConfig | None = None,
        *,
        session: requests.Session | None = None,
        logger: EventLogger | None = None,
    ) -> None:
        self._cfg = streamable or StreamableConfig()
        self._session = session or requests.Session()
        self._logger = logger

    def fetch_video(self, short_code: str) -> StreamableVideo:
        code = (short_code or "").strip()
        if not code:
            raise MediaFetchError("short_code must be a non-empty string")

        url = f"{self._cfg.api_base}/videos/{quote(code, safe='')}"
        try:
            payload = get_json(
                self._session,
                url,
                headers={"Accept": "application/json"},
                timeout=self._cfg.timeout_secs,
            )
        except requests.RequestException as e:
            raise MediaFetchError(f"Streamable lookup failed ({code}): {e}") from e
        except ValueError as e:
            raise MediaFetchError(f"Streamable response is not valid JSON ({code}): {e}") from e

        files = payload.get("files") if isinstance(payload, Mapping) else None
        if isinstance(files, Mapping):
            for key in _FILE_KEYS:
                parsed = _parse_file(files.get(key))
                if parsed is None:
                    continue
                video_url, width, height = parsed
                if self._logger is not None:
                    self._logger.debug("streamable_video_fetched", url=url, file=key)
                return StreamableVideo(
                    short_code=code, url=video_url, width=width, height=height
                )

        raise MediaFetchError(f"Streamable response has no playable file ({code})")
