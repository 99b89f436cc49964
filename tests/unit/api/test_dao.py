"""Unit tests for the MongoDB Data Access Object."""

import pytest
import pytest_asyncio
from datetime import datetime, timezone
from pymongo.errors import OperationFailure, ServerSelectionTimeoutError

from services.api.dao import (
    MongoDBDAO,
    availability_to_doc,
    doc_to_availability,
    doc_to_meeting,
    get_dao,
    meeting_to_doc,
    set_dao_instance,
)
from shared.errors import AuthenticationRequired, NetworkError, PersistenceError, ValidationError
from shared.schemas import Availability, Meeting, MeetingPlatform, MeetingType, UserProfile, WeekDay

START = datetime(2025, 1, 10, 9, 0, tzinfo=timezone.utc)


def make_meeting(**overrides) -> Meeting:
    fields = dict(
        id="m-1",
        title="Sync",
        date=START,
        duration=30,
        platform=MeetingPlatform.GOOGLE_MEET,
        participant_emails=["p@x.com", "q@x.com"],
        meeting_type="General Meeting",
        meeting_url="https://meet.google.com/abc-defg-hij",
        external_meeting_id="evt-1",
    )
    fields.update(overrides)
    return Meeting(**fields)


@pytest_asyncio.fixture
async def dao(stub_auth, test_settings, fake_db):
    dao = MongoDBDAO(stub_auth, settings=test_settings, database=fake_db)
    await dao.initialize()
    return dao


class TestSerialization:
    """Test document mapping."""

    def test_meeting_document_fields(self):
        """Test the stored meeting document shape."""
        doc = meeting_to_doc(make_meeting(), "user-1")

        assert doc["_id"] == "user-1:m-1"
        assert doc["participantEmail"] == "p@x.com, q@x.com"
        assert doc["platform"] == "Google Meet"
        assert doc["meetingType"] == "General Meeting"
        assert doc["meetingUrl"] == "https://meet.google.com/abc-defg-hij"
        assert doc["userId"] == "user-1"
        assert "password" not in doc
        assert "dialInNumber" not in doc

    def test_meeting_document_round_trip(self):
        meeting = make_meeting(password="123456")

        restored = doc_to_meeting(meeting_to_doc(meeting, "user-1"))

        assert restored.participant_emails == ["p@x.com", "q@x.com"]
        assert restored.password == "123456"
        assert restored.date == START

    def test_legacy_in_person_label(self):
        doc = meeting_to_doc(make_meeting(), "user-1")
        doc["platform"] = "Yüz Yüze"

        assert doc_to_meeting(doc).platform == MeetingPlatform.IN_PERSON

    @pytest.mark.parametrize(
        "field, value",
        [
            ("duration", "30"),
            ("duration", True),
            ("duration", 0),
            ("title", None),
            ("date", "yesterday"),
            ("platform", "Skype"),
            ("dialInNumber", 4915112345),
            ("meetingUrl", ["https://zoom.us/j/1"]),
        ],
    )
    def test_invalid_meeting_document(self, field, value):
        doc = meeting_to_doc(make_meeting(), "user-1")
        doc[field] = value

        with pytest.raises(ValidationError):
            doc_to_meeting(doc)

    def test_availability_document(self):
        availability = Availability(
            work_days={WeekDay.FRIDAY, WeekDay.MONDAY},
            start_time=datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc),
            end_time=datetime(2025, 1, 1, 17, 0, tzinfo=timezone.utc),
            timezone="Europe/Istanbul",
        )

        doc = availability_to_doc(availability)

        assert doc["workDays"] == ["Monday", "Friday"]
        assert doc["timezone"] == "Europe/Istanbul"
        assert doc_to_availability(doc).work_days == {WeekDay.MONDAY, WeekDay.FRIDAY}

    def test_availability_legacy_weekday_labels(self):
        doc = {
            "workDays": ["Pazartesi", "Cuma"],
            "startTime": "2025-01-01T09:00:00Z",
            "endTime": "2025-01-01T17:00:00Z",
        }

        availability = doc_to_availability(doc)

        assert availability.work_days == {WeekDay.MONDAY, WeekDay.FRIDAY}
        assert availability.timezone == "UTC"


class TestMeetingDAO:
    """Test meeting persistence."""

    @pytest.mark.asyncio
    async def test_save_and_load_meetings(self, dao, fake_db):
        """Test saving meetings and loading them back in date order."""
        await dao.save_meeting(make_meeting(id="late", date=datetime(2025, 2, 1, tzinfo=timezone.utc)))
        await dao.save_meeting(make_meeting(id="early"))

        meetings = await dao.load_meetings()

        assert [m.id for m in meetings] == ["early", "late"]
        assert "timely_meetings" in fake_db.collections

    @pytest.mark.asyncio
    async def test_meetings_are_scoped_to_user(self, dao, stub_auth):
        await dao.save_meeting(make_meeting(id="mine"))
        stub_auth.current_user_id = "user-2"

        assert await dao.load_meetings() == []

    @pytest.mark.asyncio
    async def test_invalid_documents_are_skipped(self, dao, fake_db):
        await dao.save_meeting(make_meeting(id="good"))
        await fake_db["timely_meetings"].insert_raw(
            {"_id": "user-1:bad", "id": "bad", "userId": "user-1", "date": START, "duration": "thirty"}
        )

        meetings = await dao.load_meetings()

        assert [m.id for m in meetings] == ["good"]

    @pytest.mark.asyncio
    async def test_wrongly_typed_optional_field_is_skipped(self, dao, fake_db):
        """A bad optional field drops that document only."""
        await dao.save_meeting(make_meeting(id="good"))
        bad = meeting_to_doc(make_meeting(id="bad"), "user-1")
        bad["dialInNumber"] = 4915112345
        await fake_db["timely_meetings"].insert_raw(bad)

        meetings = await dao.load_meetings()

        assert [m.id for m in meetings] == ["good"]

    @pytest.mark.asyncio
    async def test_write_failure_is_persistence_error(self, dao, fake_db):
        fake_db["timely_meetings"].fail_with = OperationFailure("write conflict")

        with pytest.raises(PersistenceError):
            await dao.save_meeting(make_meeting())

    @pytest.mark.asyncio
    async def test_unreachable_database_is_network_error(self, dao, fake_db):
        fake_db["timely_meetings"].fail_with = ServerSelectionTimeoutError("no servers")

        with pytest.raises(NetworkError):
            await dao.load_meetings()

    @pytest.mark.asyncio
    async def test_requires_signed_in_user(self, dao, stub_auth, fake_db):
        stub_auth.current_user_id = None

        with pytest.raises(AuthenticationRequired):
            await dao.save_meeting(make_meeting())
        assert fake_db["timely_meetings"].docs == {}


class TestMeetingTypeDAO:
    """Test meeting type persistence."""

    @pytest.mark.asyncio
    async def test_save_and_load_meeting_types(self, dao):
        await dao.save_meeting_type(
            MeetingType(id="t-1", name="Standup", duration=15, platform=MeetingPlatform.ZOOM, description="Daily")
        )

        meeting_types = await dao.load_meeting_types()

        assert len(meeting_types) == 1
        assert meeting_types[0].platform == MeetingPlatform.ZOOM
        assert meeting_types[0].description == "Daily"


class TestUserDocumentDAO:
    """Test availability and profile on the user document."""

    @pytest.mark.asyncio
    async def test_availability_absent(self, dao):
        assert await dao.load_availability() is None

    @pytest.mark.asyncio
    async def test_save_and_load_availability(self, dao, fake_db):
        await dao.save_availability(Availability.default("UTC"))

        availability = await dao.load_availability()

        assert WeekDay.MONDAY in availability.work_days
        assert fake_db["timely_users"].docs["user-1"]["availability"]["updatedAt"] is not None

    @pytest.mark.asyncio
    async def test_invalid_availability_is_ignored(self, dao, fake_db):
        await fake_db["timely_users"].insert_raw({"_id": "user-1", "availability": {"workDays": "Monday"}})

        assert await dao.load_availability() is None

    @pytest.mark.asyncio
    async def test_profile_and_availability_share_document(self, dao, fake_db):
        await dao.save_user_profile(UserProfile(id="user-1", first_name="Ada", last_name="Lovelace", email="ada@x.com"))
        await dao.save_availability(Availability.default("UTC"))

        profile = await dao.get_user_profile()

        assert profile.display_name == "Ada Lovelace"
        assert "availability" in fake_db["timely_users"].docs["user-1"]
        assert fake_db["timely_users"].docs["user-1"]["firstName"] == "Ada"

    @pytest.mark.asyncio
    async def test_wrongly_typed_profile_is_ignored(self, dao, fake_db):
        await fake_db["timely_users"].insert_raw(
            {"_id": "user-1", "firstName": "Ada", "email": "ada@x.com", "phoneNumber": 5551234}
        )

        assert await dao.get_user_profile() is None


class TestDAOInstance:
    """Test the module-level DAO holder."""

    def test_set_and_get(self, stub_auth, test_settings):
        dao = MongoDBDAO(stub_auth, settings=test_settings)
        set_dao_instance(dao)
        try:
            assert get_dao() is dao
        finally:
            set_dao_instance(None)

    def test_get_before_set_raises(self):
        set_dao_instance(None)
        with pytest.raises(RuntimeError):
            get_dao()
