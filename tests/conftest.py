import base64
from urllib.parse import parse_qs

import httpx
import pytest

from config import Settings
from oauth.errors import PersistenceError
from oauth.session import SessionState, TokenPair
from oauth.stores import TokenStore

CLIENT_ID = "test-client-id"
CLIENT_SECRET = "test-client-secret"
REDIRECT_URI = "http://localhost:3001/callback"


class MemoryTokenStore(TokenStore):
    """Token store kept in a dict, counting saves."""

    name = "memory"

    def __init__(self, tokens: TokenPair = None, fail_saves: bool = False):
        self.record = tokens.to_record() if tokens else None
        self.fail_saves = fail_saves
        self.saves = 0

    def _load_sync(self):
        if self.record is None:
            return None
        return TokenPair.from_record(self.record)

    def _save_sync(self, tokens):
        self.saves += 1
        if self.fail_saves:
            raise PersistenceError("disk full")
        self.record = tokens.to_record()

    def _clear_sync(self):
        self.record = None


class FakeSpotify:
    """httpx MockTransport handler with queued responses per endpoint."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self._queues = {"token": [], "current": []}

    @staticmethod
    def _kind(request: httpx.Request) -> str:
        return "token" if request.url.path == "/api/token" else "current"

    def queue(self, kind: str, *responses):
        self._queues[kind].extend(responses)

    def calls(self, kind: str) -> list[httpx.Request]:
        return [r for r in self.requests if self._kind(r) == kind]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self._queues[self._kind(request)]
        if not queue:
            raise AssertionError(f"Unexpected request: {request.method} {request.url}")
        response = queue.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def form(request: httpx.Request) -> dict:
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


def basic_auth_header() -> str:
    return "Basic " + base64.b64encode(f"{CLIENT_ID}:{CLIENT_SECRET}".encode()).decode()


def token_response(access="new-access", refresh=None, status=200) -> httpx.Response:
    body = {"access_token": access, "token_type": "Bearer", "expires_in": 3600}
    if refresh:
        body["refresh_token"] = refresh
    return httpx.Response(status, json=body)


SAMPLE_PLAYING = {
    "is_playing": True,
    "progress_ms": 42000,
    "currently_playing_type": "track",
    "item": {
        "id": "track123",
        "name": "Test Song",
        "duration_ms": 210000,
        "artists": [{"name": "Artist One"}, {"name": "Artist Two"}],
        "album": {
            "name": "Test Album",
            "images": [
                {"url": "https://i.scdn.co/image/large", "width": 640},
                {"url": "https://i.scdn.co/image/small", "width": 64},
            ],
        },
        "external_urls": {"spotify": "https://open.spotify.com/track/track123"},
    },
}


@pytest.fixture
def settings(tmp_path):
    return Settings({
        "client_id": CLIENT_ID,
        "client_secret": CLIENT_SECRET,
        "redirect_uri": REDIRECT_URI,
        "token_file": str(tmp_path / "tokens.json"),
        "allowed_return_origins": ["https://app.example.com"],
    })


@pytest.fixture
def spotify():
    return FakeSpotify()


@pytest.fixture
def http_client(spotify):
    return httpx.AsyncClient(transport=httpx.MockTransport(spotify))


@pytest.fixture
def store():
    return MemoryTokenStore()


@pytest.fixture
def session(store):
    return SessionState(store)
