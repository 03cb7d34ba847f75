from __future__ import annotations

from typing import Any, Mapping

import requests


class HTTPStatusError(requests.HTTPError):
    """An HTTPError that always carries the response status code."""

    def __init__(self, message: str, *, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


def get_json(
    session: requests.Session,
    url: str,
    *,
    headers: Mapping[str, str],
    timeout: float,
    params: Mapping[str, str] | None = None,
) -> Any:
    """
    GET a URL and decode its JSON body.

    Raises HTTPStatusError for non-2xx responses, other requests exceptions as-is,
    and ValueError when the body is not JSON.
    """
    resp = session.get(url, headers=dict(headers), params=params, timeout=timeout)
    status = int(getattr(resp, "status_code", 200))
    if status >= 400:
        raise HTTPStatusError(f"HTTP {status} for {url}", status_code=status)
    return resp.json()


def status_code_of(exc: BaseException) -> int | None:
    code = getattr(exc, "status_code", None)
    if isinstance(code, int):
        return code
    response = getattr(exc, "response", None)
    code = getattr(response, "status_code", None)
    return code if isinstance(code, int) else None
