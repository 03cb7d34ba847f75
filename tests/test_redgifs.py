from __future__ import annotations

import base64
import json
import threading
import time
import unittest
from datetime import datetime, timedelta, timezone
from typing import Any

import requests

from reddit_media.config_schema import RedgifsConfig
from reddit_media.errors import AuthError, MediaFetchError
from reddit_media.redgifs import RedgifsClient, RedgifsTokenClient, token_expiry

_AUTH_URL = "https://api.redgifs.com/v2/auth/temporary"


def _jwt(claims: dict[str, Any]) -> str:
    body = base64.urlsafe_b64encode(json.dumps(claims).encode("utf-8")).rstrip(b"=")
    return f"eyJhbGciOiJIUzI1NiJ9.{body.decode('ascii')}.sig"


class _FakeResponse:
    def __init__(self, payload: Any, *, status_code: int = 200) -> None:
        self._payload = payload
        self.status_code = status_code

    def json(self) -> Any:
        return self._payload


class _RoutingSession:
    """Answers GETs from a per-URL list of responses; the last one repeats."""

    def __init__(self, routes: dict[str, list[_FakeResponse]], *, delay: float = 0.0) -> None:
        self._routes = routes
        self._delay = delay
        self._lock = threading.Lock()
        self.calls: list[dict[str, Any]] = []

    def get(self, url: str, *, headers: Any = None, params: Any = None, timeout: Any = None) -> Any:
        with self._lock:
            self.calls.append({"url": url, "headers": headers, "timeout": timeout})
            responses = self._routes[url]
            response = responses.pop(0) if len(responses) > 1 else responses[0]
        if self._delay:
            time.sleep(self._delay)
        return response

    def count(self, url: str) -> int:
        return sum(1 for c in self.calls if c["url"] == url)


class _UnreachableSession:
    def __init__(self, *, delay: float) -> None:
        self._delay = delay
        self._lock = threading.Lock()
        self.calls = 0

    def get(self, url: str, *, headers: Any = None, params: Any = None, timeout: Any = None) -> Any:
        with self._lock:
            self.calls += 1
        time.sleep(self._delay)
        raise requests.ConnectionError(f"connection refused: {url}")


class _Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class TestTokenExpiry(unittest.TestCase):
    def test_reads_exp_claim(self) -> None:
        self.assertEqual(
            token_expiry(_jwt({"exp": 1000000000})),
            datetime(2001, 9, 9, 1, 46, 40, tzinfo=timezone.utc),
        )

    def test_malformed_tokens(self) -> None:
        for token in ["", "abc", "a.b", "a.!!!.c", _jwt({"sub": "x"}), _jwt({"exp": "soon"}), _jwt({"exp": True})]:
            with self.subTest(token=token):
                self.assertIsNone(token_expiry(token))


class TestRedgifsTokenClient(unittest.TestCase):
    def test_refreshes_only_when_missing_or_expired(self) -> None:
        token = _jwt({"exp": 1000000000})
        expiry = datetime(2001, 9, 9, 1, 46, 40, tzinfo=timezone.utc)
        session = _RoutingSession({_AUTH_URL: [_FakeResponse({"token": token})]})
        clock = _Clock(expiry - timedelta(minutes=10))
        client = RedgifsTokenClient(session=session, now_fn=clock)  # type: ignore[arg-type]

        self.assertEqual(client.get_token(), token)
        self.assertEqual(session.count(_AUTH_URL), 1)
        self.assertEqual(client.expiry, expiry)

        clock.now = expiry - timedelta(seconds=1)
        client.get_token()
        self.assertEqual(session.count(_AUTH_URL), 1)

        clock.now = expiry + timedelta(seconds=1)
        client.get_token()
        self.assertEqual(session.count(_AUTH_URL), 2)

    def test_token_without_expiry_is_kept(self) -> None:
        session = _RoutingSession({_AUTH_URL: [_FakeResponse({"token": "a.!!!.c"})]})
        client = RedgifsTokenClient(session=session)  # type: ignore[arg-type]

        self.assertEqual(client.get_token(), "a.!!!.c")
        self.assertIsNone(client.expiry)
        self.assertEqual(client.get_token(), "a.!!!.c")
        self.assertEqual(session.count(_AUTH_URL), 1)

    def test_concurrent_callers_share_one_refresh(self) -> None:
        session = _RoutingSession({_AUTH_URL: [_FakeResponse({"token": "tok"})]}, delay=0.05)
        client = RedgifsTokenClient(session=session)  # type: ignore[arg-type]

        results: list[str] = []
        results_lock = threading.Lock()

        def worker() -> None:
            tok = client.get_token()
            with results_lock:
                results.append(tok)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        self.assertEqual(results, ["tok"] * 8)
        self.assertEqual(session.count(_AUTH_URL), 1)

    def test_concurrent_callers_share_one_failed_refresh(self) -> None:
        session = _UnreachableSession(delay=0.2)
        client = RedgifsTokenClient(session=session)  # type: ignore[arg-type]

        errors: list[BaseException] = []
        errors_lock = threading.Lock()

        def worker() -> None:
            try:
                client.get_token()
            except AuthError as e:
                with errors_lock:
                    errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        self.assertEqual(len(errors), 8)
        self.assertEqual(session.calls, 1)
        self.assertIsNone(client.token)

        # The failed attempt is not cached; the next caller tries again.
        with self.assertRaises(AuthError):
            client.get_token()
        self.assertEqual(session.calls, 2)

    def test_refresh_token_replaces_a_valid_token(self) -> None:
        session = _RoutingSession(
            {_AUTH_URL: [_FakeResponse({"token": "first"}), _FakeResponse({"token": "second"})]}
        )
        client = RedgifsTokenClient(session=session)  # type: ignore[arg-type]

        self.assertEqual(client.get_token(), "first")
        self.assertEqual(client.refresh_token(), "second")
        self.assertEqual(client.get_token(), "second")
        self.assertEqual(session.count(_AUTH_URL), 2)

    def test_failures_raise_auth_error_without_retry(self) -> None:
        cases = [
            _FakeResponse({}, status_code=503),
            _FakeResponse({"nope": 1}),
            _FakeResponse({"token": "   "}),
            _FakeResponse(["token"]),
        ]
        for response in cases:
            with self.subTest(payload=response.json(), status=response.status_code):
                session = _RoutingSession({_AUTH_URL: [response]})
                client = RedgifsTokenClient(session=session)  # type: ignore[arg-type]
                with self.assertRaises(AuthError):
                    client.get_token()
                self.assertEqual(session.count(_AUTH_URL), 1)
                self.assertIsNone(client.token)

    def test_request_headers(self) -> None:
        session = _RoutingSession({_AUTH_URL: [_FakeResponse({"token": "tok"})]})
        cfg = RedgifsConfig(user_agent="reddit-media-tests/1.0", timeout_secs=3)
        client = RedgifsTokenClient(cfg, session=session)  # type: ignore[arg-type]
        client.get_token()

        call = session.calls[0]
        self.assertEqual(call["headers"]["User-Agent"], "reddit-media-tests/1.0")
        self.assertEqual(call["headers"]["Accept"], "application/json")
        self.assertEqual(call["headers"]["Accept-Language"], "en;q=1.0")
        self.assertEqual(call["timeout"], 3)

    def test_shared_client_is_a_singleton(self) -> None:
        from reddit_media.redgifs import shared_token_client

        self.assertIs(shared_token_client(), shared_token_client(RedgifsConfig(timeout_secs=1)))


class TestRedgifsClient(unittest.TestCase):
    _GIF_URL = "https://api.redgifs.com/v2/gifs/abcdef"

    def _gif_payload(self) -> dict[str, Any]:
        return {
            "gif": {
                "id": "abcdef",
                "userName": "someone",
                "width": 1280,
                "height": 720,
                "createDate": 1000000000,
                "urls": {"hd": "https://media.redgifs.com/Abcdef.mp4", "sd": "https://x/sd.mp4"},
            }
        }

    def test_fetch_gif_uses_bearer_token(self) -> None:
        session = _RoutingSession(
            {
                _AUTH_URL: [_FakeResponse({"token": "tok"})],
                self._GIF_URL: [_FakeResponse(self._gif_payload())],
            }
        )
        tokens = RedgifsTokenClient(session=session)  # type: ignore[arg-type]
        client = RedgifsClient(tokens, session=session)  # type: ignore[arg-type]

        gif = client.fetch_gif("abcdef")

        self.assertEqual(gif.url, "https://media.redgifs.com/Abcdef.mp4")
        self.assertEqual((gif.width, gif.height), (1280, 720))
        self.assertEqual(gif.username, "someone")
        self.assertEqual(gif.created, datetime(2001, 9, 9, 1, 46, 40, tzinfo=timezone.utc))

        gif_call = [c for c in session.calls if c["url"] == self._GIF_URL][0]
        self.assertEqual(gif_call["headers"]["Authorization"], "Bearer tok")

    def test_unauthorized_drops_cached_token(self) -> None:
        session = _RoutingSession(
            {
                _AUTH_URL: [_FakeResponse({"token": "old"}), _FakeResponse({"token": "new"})],
                self._GIF_URL: [
                    _FakeResponse({"error": "expired"}, status_code=401),
                    _FakeResponse(self._gif_payload()),
                ],
            }
        )
        tokens = RedgifsTokenClient(session=session)  # type: ignore[arg-type]
        client = RedgifsClient(tokens, session=session)  # type: ignore[arg-type]

        with self.assertRaises(MediaFetchError):
            client.fetch_gif("abcdef")
        self.assertIsNone(tokens.token)

        client.fetch_gif("abcdef")
        self.assertEqual(session.calls[-1]["headers"]["Authorization"], "Bearer new")
        self.assertEqual(session.count(_AUTH_URL), 2)

    def test_incomplete_payload_raises(self) -> None:
        payload = self._gif_payload()
        del payload["gif"]["urls"]["hd"]
        session = _RoutingSession(
            {
                _AUTH_URL: [_FakeResponse({"token": "tok"})],
                self._GIF_URL: [_FakeResponse(payload)],
            }
        )
        client = RedgifsClient(
            RedgifsTokenClient(session=session),  # type: ignore[arg-type]
            session=session,  # type: ignore[arg-type]
        )
        with self.assertRaises(MediaFetchError):
            client.fetch_gif("abcdef")


if __name__ == "__main__":
    unittest.main()
