"""Unit tests for the REST API routes."""

import pytest
from fastapi.testclient import TestClient

from services.api.main import create_app, status_for_error
from services.meeting_links.sandbox_client import SandboxMeetingProvider
from services.timely.app import TimelyApp
from shared.errors import (
    AuthenticationFailed,
    AuthenticationRequired,
    InvalidRequest,
    NetworkError,
    PersistenceError,
    ProviderApiError,
    TimelyError,
)
from shared.schemas import MeetingPlatform

PREFIX = "/api/v1"
SIGN_IN = "accounts:signInWithPassword"


@pytest.fixture
def timely(test_settings, fake_session, fake_db):
    providers = {
        platform: SandboxMeetingProvider(platform)
        for platform in MeetingPlatform
        if platform.requires_link
    }
    return TimelyApp(test_settings, session=fake_session, database=fake_db, providers=providers)


@pytest.fixture
def client(timely):
    with TestClient(create_app(timely)) as test_client:
        yield test_client


@pytest.fixture
def signed_in(client, fake_session, sign_in_payload):
    fake_session.add_response(SIGN_IN, 200, sign_in_payload)
    response = client.post(f"{PREFIX}/auth/signin", json={"email": "me@example.com", "password": "secret"})
    assert response.status_code == 200
    return client


def draft_body(**overrides):
    body = {
        "title": "Sync",
        "start_time": "2025-01-10T09:00:00Z",
        "duration": 30,
        "platform": "Zoom",
        "participants": ["p@x.com"],
    }
    body.update(overrides)
    return body


class TestErrorMapping:
    """Test error to status mapping."""

    @pytest.mark.parametrize(
        "error, status_code",
        [
            (AuthenticationRequired(), 401),
            (AuthenticationFailed("no"), 401),
            (InvalidRequest("bad"), 400),
            (ProviderApiError("boom", 500, "Zoom"), 502),
            (NetworkError("offline"), 503),
            (PersistenceError("write failed"), 503),
            (TimelyError("other"), 500),
        ],
    )
    def test_status_for_error(self, error, status_code):
        assert status_for_error(error) == status_code


class TestHealth:
    """Test health check endpoint."""

    def test_health_check(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_title_uses_app_name(self, client):
        assert client.app.title == "Timely API"


class TestAuthRoutes:
    """Test authentication endpoints."""

    def test_sign_in(self, client, fake_session, sign_in_payload):
        fake_session.add_response(SIGN_IN, 200, sign_in_payload)

        response = client.post(f"{PREFIX}/auth/signin", json={"email": "me@example.com", "password": "secret"})

        assert response.status_code == 200
        assert response.json()["user_id"] == "user-1"
        assert client.get(f"{PREFIX}/auth/me").json()["signed_in"] is True

    def test_wrong_password(self, client, fake_session):
        fake_session.add_response(SIGN_IN, 400, {"error": {"message": "INVALID_PASSWORD"}})

        response = client.post(f"{PREFIX}/auth/signin", json={"email": "me@example.com", "password": "nope"})

        assert response.status_code == 401
        assert response.json() == {
            "detail": "The password is incorrect.",
            "error": "AuthenticationFailed",
            "retryable": False,
        }

    def test_federated_begin(self, client):
        response = client.post(f"{PREFIX}/auth/federated/begin")

        body = response.json()
        assert len(body["raw_nonce"]) == 32
        assert len(body["hashed_nonce"]) == 64

    def test_sign_out(self, signed_in):
        response = signed_in.post(f"{PREFIX}/auth/signout")

        assert response.status_code == 200
        assert signed_in.get(f"{PREFIX}/auth/me").json()["signed_in"] is False


class TestDraftRoutes:
    """Test the draft lifecycle."""

    def test_requires_sign_in(self, client):
        response = client.post(f"{PREFIX}/drafts", json=draft_body())

        assert response.status_code == 401

    def test_unknown_draft(self, signed_in):
        response = signed_in.get(f"{PREFIX}/drafts/missing")

        assert response.status_code == 400
        assert response.json()["error"] == "InvalidRequest"

    def test_invalid_participant(self, signed_in):
        response = signed_in.post(f"{PREFIX}/drafts", json=draft_body(participants=["nope"]))

        assert response.status_code == 400

    def test_create_link_and_schedule(self, signed_in, fake_db):
        draft = signed_in.post(f"{PREFIX}/drafts", json=draft_body()).json()
        assert draft["link_state"] == "idle"

        link = signed_in.post(f"{PREFIX}/drafts/{draft['id']}/link").json()
        assert link["success"] is True
        assert link["sandbox"] is True
        assert link["password"] == "000000"

        response = signed_in.post(f"{PREFIX}/drafts/{draft['id']}/schedule")

        assert response.status_code == 201
        body = response.json()
        assert body["meeting"]["meeting_url"] == link["meeting_url"]
        assert body["invitations_sent"] == []
        assert list(body["invitations_failed"]) == ["p@x.com"]
        assert len(fake_db["timely_meetings"].docs) == 1
        assert signed_in.get(f"{PREFIX}/drafts/{draft['id']}").status_code == 400

        meetings = signed_in.get(f"{PREFIX}/meetings").json()
        assert [m["id"] for m in meetings] == [draft["id"]]
        contacts = signed_in.get(f"{PREFIX}/contacts").json()
        assert contacts[0]["email"] == "p@x.com"

    def test_update_drops_link(self, signed_in):
        draft = signed_in.post(f"{PREFIX}/drafts", json=draft_body()).json()
        signed_in.post(f"{PREFIX}/drafts/{draft['id']}/link")

        updated = signed_in.patch(f"{PREFIX}/drafts/{draft['id']}", json={"platform": "Microsoft Teams"}).json()

        assert updated["link_state"] == "idle"
        assert updated["meeting_url"] is None
        assert updated["version"] == 1

    def test_schedule_without_link(self, signed_in):
        draft = signed_in.post(f"{PREFIX}/drafts", json=draft_body()).json()

        response = signed_in.post(f"{PREFIX}/drafts/{draft['id']}/schedule")

        assert response.status_code == 400

    def test_delete_draft(self, signed_in):
        draft = signed_in.post(f"{PREFIX}/drafts", json=draft_body()).json()

        assert signed_in.delete(f"{PREFIX}/drafts/{draft['id']}").status_code == 204
        assert signed_in.get(f"{PREFIX}/drafts/{draft['id']}").status_code == 400


class TestDataRoutes:
    """Test meeting types, availability, contacts and profile."""

    def test_meetings_require_sign_in(self, client):
        assert client.get(f"{PREFIX}/meetings").status_code == 401

    def test_meeting_types(self, signed_in):
        assert len(signed_in.get(f"{PREFIX}/meeting-types").json()) == 3

        response = signed_in.post(
            f"{PREFIX}/meeting-types", json={"name": "Standup", "duration": 15, "platform": "Zoom"}
        )

        assert response.status_code == 201
        assert len(signed_in.get(f"{PREFIX}/meeting-types").json()) == 4

    def test_replace_availability(self, signed_in):
        response = signed_in.put(
            f"{PREFIX}/availability",
            json={
                "work_days": ["Monday", "Tuesday"],
                "start_time": "2025-01-01T08:00:00Z",
                "end_time": "2025-01-01T16:00:00Z",
                "timezone": "UTC",
            },
        )

        assert response.status_code == 200
        assert set(response.json()["work_days"]) == {"Monday", "Tuesday"}
        check = signed_in.get(f"{PREFIX}/availability/check", params={"at": "2025-01-13T15:30:00Z"})
        assert check.json()["available"] is True

    def test_invalid_availability(self, signed_in):
        response = signed_in.put(
            f"{PREFIX}/availability",
            json={
                "work_days": [],
                "start_time": "2025-01-01T16:00:00Z",
                "end_time": "2025-01-01T08:00:00Z",
            },
        )

        assert response.status_code == 400
        assert "working day" in response.json()["detail"]

    def test_add_contact(self, signed_in):
        response = signed_in.post(f"{PREFIX}/contacts", json={"name": "Jane", "email": "jane@x.com"})

        assert response.status_code == 201
        assert response.json()["meeting_count"] == 0

    def test_profile_not_found(self, signed_in):
        assert signed_in.get(f"{PREFIX}/profile").status_code == 404

    def test_update_profile_creates_document(self, signed_in):
        response = signed_in.patch(f"{PREFIX}/profile", json={"purpose": "Consulting"})

        assert response.status_code == 200
        assert response.json()["first_name"] == "Test User"
        assert signed_in.get(f"{PREFIX}/profile").json()["purpose"] == "Consulting"
