from __future__ import annotations

import json
import sys
import traceback
import uuid
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, TextIO

LEVELS: dict[str, int] = {"DEBUG": 10, "INFO": 20, "WARN": 30, "ERROR": 40}


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _truncate(text: str, *, limit: int) -> str:
    s = str(text or "")
    if limit <= 0:
        return ""
    if len(s) <= limit:
        return s
    return s[: max(0, limit - 1)] + "…"


def _level_value(level: str) -> int:
    lvl = (level or "").strip().upper()
    if lvl == "WARNING":
        lvl = "WARN"
    if lvl not in LEVELS:
        raise ValueError(f"unknown log level: {level!r}")
    return LEVELS[lvl]


class EventLogger:
    """
    JSON-lines event log shared by the dispatcher, host clients and CLI.

    Each record is one JSON object per line with ts, level, event and session_id,
    plus an optional url and free-form data. Records below min_level are dropped.
    """

    def __init__(
        self,
        stream: TextIO,
        *,
        min_level: str = "INFO",
        session_id: str | None = None,
        owns_stream: bool = False,
    ) -> None:
        self._fp: TextIO | None = stream
        self._min_level = _level_value(min_level)
        self._session_id = (session_id or "").strip() or uuid.uuid4().hex
        self._owns_stream = bool(owns_stream)
        self._lock = Lock()

    @classmethod
    def open(
        cls,
        path: str | Path,
        *,
        min_level: str = "INFO",
        overwrite: bool = True,
        session_id: str | None = None,
    ) -> "EventLogger":
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        fp = p.open("w" if overwrite else "a", encoding="utf-8", newline="\n")
        return cls(fp, min_level=min_level, session_id=session_id, owns_stream=True)

    @classmethod
    def to_stream(
        cls, stream: TextIO | None = None, *, min_level: str = "INFO"
    ) -> "EventLogger":
        return cls(stream or sys.stderr, min_level=min_level)

    @property
    def session_id(self) -> str:
        return self._session_id

    def close(self) -> None:
        with self._lock:
            if self._fp is None:
                return
            try:
                self._fp.flush()
            finally:
                if self._owns_stream:
                    self._fp.close()
            self._fp = None

    def __enter__(self) -> "EventLogger":
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    def enabled_for(self, level: str) -> bool:
        return _level_value(level) >= self._min_level

    def debug(self, event: str, *, url: str | None = None, **data: Any) -> None:
        self.log("DEBUG", event, url=url, **data)

    def info(self, event: str, *, url: str | None = None, **data: Any) -> None:
        self.log("INFO", event, url=url, **data)

    def warning(self, event: str, *, url: str | None = None, **data: Any) -> None:
        self.log("WARN", event, url=url, **data)

    def error(self, event: str, *, url: str | None = None, **data: Any) -> None:
        self.log("ERROR", event, url=url, **data)

    def exception(
        self,
        event: str,
        *,
        exc: BaseException,
        level: str = "ERROR",
        url: str | None = None,
        **data: Any,
    ) -> None:
        err = {
            "type": type(exc).__name__,
            "message": _truncate(str(exc), limit=2000),
            "traceback": _truncate(
                "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
                limit=8000,
            ),
        }
        self.log(level, event, url=url, error=err, **data)

    def log(self, level: str, event: str, *, url: str | None = None, **data: Any) -> None:
        value = _level_value(level)
        if value < self._min_level:
            return

        record: dict[str, Any] = {
            "ts": _utc_now_iso(),
            "level": "WARN" if level.strip().upper() == "WARNING" else level.strip().upper(),
            "event": (event or "").strip() or "event",
            "session_id": self._session_id,
        }

        u = (url or "").strip()
        if u:
            record["url"] = u

        if data:
            record["data"] = data

        payload = json.dumps(
            record,
            ensure_ascii=False,
            sort_keys=True,
            separators=(",", ":"),
            default=str,
        )

        with self._lock:
            if self._fp is None:
                return
            self._fp.write(payload + "\n")
            self._fp.flush()
