"""Pytest configuration and fixtures."""

import asyncio
import copy
import json
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio

# Set test environment variables
os.environ["IDENTITY_API_KEY"] = "test-identity-key"
os.environ["ZOOM_ACCOUNT_ID"] = "test-account"
os.environ["ZOOM_CLIENT_ID"] = "test-client"
os.environ["ZOOM_CLIENT_SECRET"] = "test-secret"
os.environ["GOOGLE_ACCESS_TOKEN"] = "test-google-token"
os.environ["MS_CLIENT_ID"] = "test-ms-client"
os.environ["MS_CLIENT_SECRET"] = "test-ms-secret"
os.environ["MS_TENANT_ID"] = "test-tenant"
os.environ["MS_ORGANIZER_USER_ID"] = "organizer@example.com"
os.environ["MEETING_LINKS_SANDBOX"] = "false"
os.environ["HTTP_MAX_RETRIES"] = "1"

from shared.config import Settings  # noqa: E402
from shared.schemas import AuthSession  # noqa: E402


# ----------------------------------------------------------------------
# aiohttp session double
# ----------------------------------------------------------------------

class FakeResponse:
    def __init__(self, status: int, body: str):
        self.status = status
        self._body = body

    async def text(self) -> str:
        return self._body


class _ScriptedCall:
    def __init__(self, pattern: str, status: int, body: str, exc: Optional[BaseException], delay: float):
        self.pattern = pattern
        self.status = status
        self.body = body
        self.exc = exc
        self.delay = delay


class _RequestContext:
    def __init__(self, session: "FakeSession", url: str, kwargs: Dict[str, Any]):
        self.session = session
        self.url = url
        self.kwargs = kwargs

    async def __aenter__(self) -> FakeResponse:
        self.session.requests.append({"url": self.url, **self.kwargs})
        call = self.session._next_call(self.url)
        if call.delay:
            await asyncio.sleep(call.delay)
        if call.exc is not None:
            raise call.exc
        return FakeResponse(call.status, call.body)

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False


class FakeSession:
    """Records POST requests and replays scripted responses in order."""

    def __init__(self):
        self.requests: List[Dict[str, Any]] = []
        self._script: List[_ScriptedCall] = []
        self.closed = False

    def add_response(
        self,
        pattern: str,
        status: int = 200,
        json_body: Any = None,
        body: Optional[str] = None,
        exc: Optional[BaseException] = None,
        delay: float = 0,
    ) -> None:
        if body is None:
            body = json.dumps(json_body) if json_body is not None else ""
        self._script.append(_ScriptedCall(pattern, status, body, exc, delay))

    def _next_call(self, url: str) -> _ScriptedCall:
        for index, call in enumerate(self._script):
            if call.pattern in url:
                return self._script.pop(index)
        raise AssertionError(f"Unexpected request to {url}")

    def post(self, url: str, **kwargs: Any) -> _RequestContext:
        return _RequestContext(self, url, kwargs)

    def requests_to(self, pattern: str) -> List[Dict[str, Any]]:
        return [request for request in self.requests if pattern in request["url"]]

    async def close(self) -> None:
        self.closed = True


# ----------------------------------------------------------------------
# Motor database double
# ----------------------------------------------------------------------

class FakeCursor:
    def __init__(self, docs: List[Dict[str, Any]]):
        self._docs = docs

    def sort(self, key: str, direction: int = 1) -> "FakeCursor":
        self._docs = sorted(self._docs, key=lambda doc: doc.get(key), reverse=direction < 0)
        return self

    def __aiter__(self):
        self._iter = iter(self._docs)
        return self

    async def __anext__(self) -> Dict[str, Any]:
        try:
            return next(self._iter)
        except StopIteration:
            raise StopAsyncIteration


class FakeCollection:
    """The subset of ``AsyncIOMotorCollection`` used by the DAO."""

    def __init__(self, name: str):
        self.name = name
        self.docs: Dict[Any, Dict[str, Any]] = {}
        self.indexes: List[Any] = []
        self.fail_with: Optional[BaseException] = None

    @staticmethod
    def _matches(doc: Dict[str, Any], query: Dict[str, Any]) -> bool:
        return all(doc.get(key) == value for key, value in query.items())

    def _check_failure(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    async def create_indexes(self, indexes: List[Any]) -> None:
        self.indexes.extend(indexes)

    async def find_one(self, query: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        self._check_failure()
        for doc in self.docs.values():
            if self._matches(doc, query):
                return copy.deepcopy(doc)
        return None

    def find(self, query: Dict[str, Any]) -> FakeCursor:
        self._check_failure()
        return FakeCursor([copy.deepcopy(doc) for doc in self.docs.values() if self._matches(doc, query)])

    async def replace_one(self, query: Dict[str, Any], doc: Dict[str, Any], upsert: bool = False) -> None:
        self._check_failure()
        self.docs[doc.get("_id", query.get("_id"))] = copy.deepcopy(doc)

    async def update_one(self, query: Dict[str, Any], update: Dict[str, Any], upsert: bool = False) -> None:
        self._check_failure()
        key = query["_id"]
        doc = self.docs.get(key)
        if doc is None:
            if not upsert:
                return
            doc = {"_id": key}
            self.docs[key] = doc
        doc.update(copy.deepcopy(update.get("$set", {})))

    async def insert_raw(self, doc: Dict[str, Any]) -> None:
        """Store a document as-is, bypassing serialization."""
        self.docs[doc["_id"]] = copy.deepcopy(doc)


class FakeDatabase:
    def __init__(self):
        self.collections: Dict[str, FakeCollection] = {}

    def __getitem__(self, name: str) -> FakeCollection:
        if name not in self.collections:
            self.collections[name] = FakeCollection(name)
        return self.collections[name]


class StubAuth:
    """Minimal identity source for store and DAO tests."""

    def __init__(self, user_id: Optional[str] = "user-1"):
        self.current_user_id = user_id


# ----------------------------------------------------------------------
# Fixtures
# ----------------------------------------------------------------------

@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        identity_api_key="test-identity-key",
        zoom_account_id="test-account",
        zoom_client_id="test-client",
        zoom_client_secret="test-secret",
        google_access_token="test-google-token",
        ms_client_id="test-ms-client",
        ms_client_secret="test-ms-secret",
        ms_tenant_id="test-tenant",
        ms_organizer_user_id="organizer@example.com",
        meeting_links_sandbox=False,
        http_max_retries=1,
        http_timeout_seconds=5.0,
        smtp_username=None,
        smtp_password=None,
    )


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def fake_db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def stub_auth() -> StubAuth:
    return StubAuth()


@pytest.fixture
def meeting_start() -> datetime:
    return datetime(2025, 1, 10, 9, 0, tzinfo=timezone.utc)


def sign_in_response(user_id: str = "user-1", email: str = "me@example.com") -> Dict[str, Any]:
    return {
        "localId": user_id,
        "email": email,
        "displayName": "Test User",
        "idToken": "id-token-123",
        "refreshToken": "refresh-123",
        "expiresIn": "3600",
    }


@pytest.fixture
def sign_in_payload() -> Dict[str, Any]:
    return sign_in_response()


@pytest_asyncio.fixture
async def timely_app(test_settings, fake_session, fake_db):
    """A started ``TimelyApp`` wired to fakes, with a signed-in user."""
    from services.timely.app import TimelyApp

    app = TimelyApp(test_settings, session=fake_session, database=fake_db)
    await app.start()
    await app.auth._set_session(
        AuthSession(user_id="user-1", email="me@example.com", display_name="Test User", id_token="id-token-123")
    )
    yield app
    await app.close()
