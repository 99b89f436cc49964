"""
Data Access Object for MongoDB operations.

Every read and write is scoped to the signed-in user. Documents use the
camelCase field names shared with the mobile client.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING, IndexModel
from pymongo.errors import ConnectionFailure, PyMongoError

from shared.config import Settings, get_settings
from shared.errors import (
    AuthenticationRequired,
    NetworkError,
    PersistenceError,
    TimelyError,
    ValidationError,
)
from shared.schemas import (
    Availability,
    Meeting,
    MeetingPlatform,
    MeetingType,
    UserProfile,
    WeekDay,
    utc_now,
)

logger = logging.getLogger(__name__)


def _child_id(user_id: str, entity_id: str) -> str:
    """Document key of an entity in a per-user sub-collection."""
    return f"{user_id}:{entity_id}"


def _as_datetime(value: Any, field: str, document_id: Optional[str]) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError(f"Field '{field}' is not a timestamp", document_id)
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    raise ValidationError(f"Field '{field}' is missing or not a timestamp", document_id)


def _require(doc: Dict[str, Any], field: str, kind: type, document_id: Optional[str]) -> Any:
    value = doc.get(field)
    # bool is an int subclass; never accept it for numeric fields
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise ValidationError(f"Field '{field}' is missing or not {kind.__name__}", document_id)
    return value


def _platform(value: Any, document_id: Optional[str]) -> MeetingPlatform:
    try:
        return MeetingPlatform(value)
    except ValueError:
        raise ValidationError(f"Unknown platform '{value}'", document_id)


# ----------------------------------------------------------------------
# Serialization
# ----------------------------------------------------------------------

def meeting_to_doc(meeting: Meeting, user_id: str) -> Dict[str, Any]:
    doc = {
        "_id": _child_id(user_id, meeting.id),
        "id": meeting.id,
        "title": meeting.title,
        "date": meeting.date,
        "duration": meeting.duration,
        "platform": meeting.platform.value,
        "participantEmail": meeting.participant_email,
        "meetingType": meeting.meeting_type,
        "userId": user_id,
        "createdAt": meeting.created_at,
    }
    optional = {
        "meetingUrl": meeting.meeting_url,
        "externalMeetingId": meeting.external_meeting_id,
        "password": meeting.password,
        "dialInNumber": meeting.dial_in_number,
    }
    doc.update({key: value for key, value in optional.items() if value})
    return doc


def doc_to_meeting(doc: Dict[str, Any]) -> Meeting:
    document_id = doc.get("_id")
    meeting_id = _require(doc, "id", str, document_id)
    duration = _require(doc, "duration", int, document_id)
    if duration <= 0:
        raise ValidationError("Field 'duration' must be positive", document_id)
    fields = dict(
        id=meeting_id,
        title=_require(doc, "title", str, document_id),
        date=_as_datetime(doc.get("date"), "date", document_id),
        duration=duration,
        platform=_platform(_require(doc, "platform", str, document_id), document_id),
        participant_emails=_require(doc, "participantEmail", str, document_id),
        meeting_type=_require(doc, "meetingType", str, document_id),
        meeting_url=doc.get("meetingUrl"),
        external_meeting_id=doc.get("externalMeetingId"),
        password=doc.get("password"),
        dial_in_number=doc.get("dialInNumber"),
        created_at=_as_datetime(doc["createdAt"], "createdAt", document_id) if doc.get("createdAt") else utc_now(),
    )
    # pydantic's ValidationError is a ValueError
    try:
        return Meeting(**fields)
    except ValueError as e:
        raise ValidationError(f"Invalid meeting: {e}", document_id)


def meeting_type_to_doc(meeting_type: MeetingType, user_id: str) -> Dict[str, Any]:
    return {
        "_id": _child_id(user_id, meeting_type.id),
        "id": meeting_type.id,
        "name": meeting_type.name,
        "duration": meeting_type.duration,
        "platform": meeting_type.platform.value,
        "description": meeting_type.description,
        "userId": user_id,
        "createdAt": utc_now(),
    }


def doc_to_meeting_type(doc: Dict[str, Any]) -> MeetingType:
    document_id = doc.get("_id")
    duration = _require(doc, "duration", int, document_id)
    if duration <= 0:
        raise ValidationError("Field 'duration' must be positive", document_id)
    fields = dict(
        id=_require(doc, "id", str, document_id),
        name=_require(doc, "name", str, document_id),
        duration=duration,
        platform=_platform(_require(doc, "platform", str, document_id), document_id),
        description=_require(doc, "description", str, document_id),
    )
    try:
        return MeetingType(**fields)
    except ValueError as e:
        raise ValidationError(f"Invalid meeting type: {e}", document_id)


def availability_to_doc(availability: Availability) -> Dict[str, Any]:
    work_days = sorted(availability.work_days, key=lambda day: day.iso_weekday)
    return {
        "workDays": [day.value for day in work_days],
        "startTime": availability.start_time,
        "endTime": availability.end_time,
        "timezone": availability.timezone,
        "updatedAt": availability.updated_at or utc_now(),
    }


def doc_to_availability(data: Dict[str, Any], document_id: Optional[str] = None) -> Availability:
    labels = data.get("workDays")
    if not isinstance(labels, list):
        raise ValidationError("Field 'workDays' is missing or not a list", document_id)
    try:
        work_days = {WeekDay(label) for label in labels}
    except ValueError as e:
        raise ValidationError(f"Unknown weekday in 'workDays': {e}", document_id)
    try:
        return Availability(
            work_days=work_days,
            start_time=_as_datetime(data.get("startTime"), "startTime", document_id),
            end_time=_as_datetime(data.get("endTime"), "endTime", document_id),
            timezone=data.get("timezone") or "UTC",
            updated_at=_as_datetime(data["updatedAt"], "updatedAt", document_id) if data.get("updatedAt") else None,
        )
    except ValueError as e:
        raise ValidationError(f"Invalid availability: {e}", document_id)


def profile_to_doc(profile: UserProfile) -> Dict[str, Any]:
    return {
        "firstName": profile.first_name,
        "lastName": profile.last_name,
        "email": profile.email,
        "purpose": profile.purpose,
        "schedulingPreference": profile.scheduling_preference,
        "calendarProvider": profile.calendar_provider,
        "isOnboardingCompleted": profile.is_onboarding_completed,
        "createdAt": profile.created_at,
        "phoneNumber": profile.phone_number,
        "avatarURL": profile.avatar_url,
    }


def doc_to_profile(doc: Dict[str, Any]) -> UserProfile:
    document_id = doc.get("_id")
    fields = dict(
        id=str(document_id),
        first_name=_require(doc, "firstName", str, document_id),
        last_name=doc.get("lastName") or "",
        email=_require(doc, "email", str, document_id),
        purpose=doc.get("purpose") or "",
        scheduling_preference=doc.get("schedulingPreference") or "",
        calendar_provider=doc.get("calendarProvider") or "",
        is_onboarding_completed=bool(doc.get("isOnboardingCompleted", False)),
        created_at=_as_datetime(doc["createdAt"], "createdAt", document_id) if doc.get("createdAt") else utc_now(),
        phone_number=doc.get("phoneNumber") or "",
        avatar_url=doc.get("avatarURL") or "",
    )
    try:
        return UserProfile(**fields)
    except ValueError as e:
        raise ValidationError(f"Invalid profile: {e}", document_id)


class MongoDBDAO:
    """MongoDB Data Access Object."""

    def __init__(self, auth, settings: Optional[Settings] = None, database=None):
        """
        Initialize the DAO.

        Args:
            auth: Source of the current user id (``AuthGateway``)
            settings: Application settings
            database: Pre-built database handle; a motor client is created when omitted
        """
        self.auth = auth
        self.settings = settings or get_settings()
        self.client: Optional[AsyncIOMotorClient] = None
        self.db = database
        self.users_collection = None
        self.meeting_types_collection = None
        self.meetings_collection = None
        self.initialized = False

    async def initialize(self):
        """Initialize MongoDB client and collections."""
        try:
            if self.db is None:
                timeout_ms = self.settings.mongodb_timeout_ms
                self.client = AsyncIOMotorClient(
                    self.settings.mongodb_url,
                    serverSelectionTimeoutMS=timeout_ms,
                    connectTimeoutMS=timeout_ms,
                    socketTimeoutMS=timeout_ms * 2,
                    tz_aware=True,
                )
                self.db = self.client[self.settings.mongodb_database]
                await self.client.admin.command("ping")

            self.users_collection = self.db[self.settings.collection_name(self.settings.users_collection)]
            self.meeting_types_collection = self.db[
                self.settings.collection_name(self.settings.meeting_types_collection)
            ]
            self.meetings_collection = self.db[
                self.settings.collection_name(self.settings.meetings_collection)
            ]

            await self._create_indexes()

            self.initialized = True
            logger.info(f"MongoDB DAO initialized successfully (Database: {self.settings.mongodb_database})")

        except PyMongoError as e:
            logger.error(f"Failed to initialize MongoDB DAO: {e}", exc_info=True)
            raise self._translate(e, "connect to the database")

    async def _create_indexes(self):
        """Create indexes for collections."""
        await self.meeting_types_collection.create_indexes([
            IndexModel([("userId", ASCENDING), ("name", ASCENDING)]),
        ])
        await self.meetings_collection.create_indexes([
            IndexModel([("userId", ASCENDING), ("date", ASCENDING)]),
        ])

    async def close(self):
        if self.client is not None:
            self.client.close()
            self.client = None
        self.initialized = False

    def _user_id(self) -> str:
        user_id = self.auth.current_user_id
        if not user_id:
            raise AuthenticationRequired()
        return user_id

    @staticmethod
    def _translate(error: PyMongoError, action: str) -> TimelyError:
        if isinstance(error, ConnectionFailure):
            return NetworkError(f"Could not {action}: the database is unreachable")
        return PersistenceError(f"Could not {action}: {error}")

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def save_meeting(self, meeting: Meeting) -> Meeting:
        """Create or replace a meeting under the current user."""
        user_id = self._user_id()
        try:
            doc = meeting_to_doc(meeting, user_id)
            await self.meetings_collection.replace_one({"_id": doc["_id"]}, doc, upsert=True)
            logger.info(f"Saved meeting: {meeting.id}")
            return meeting
        except PyMongoError as e:
            logger.error(f"Failed to save meeting {meeting.id}: {e}")
            raise self._translate(e, "save the meeting")

    async def save_meeting_type(self, meeting_type: MeetingType) -> MeetingType:
        user_id = self._user_id()
        try:
            doc = meeting_type_to_doc(meeting_type, user_id)
            await self.meeting_types_collection.replace_one({"_id": doc["_id"]}, doc, upsert=True)
            logger.info(f"Saved meeting type: {meeting_type.id}")
            return meeting_type
        except PyMongoError as e:
            logger.error(f"Failed to save meeting type {meeting_type.id}: {e}")
            raise self._translate(e, "save the meeting type")

    async def save_availability(self, availability: Availability) -> Availability:
        """Replace the embedded availability on the user document."""
        user_id = self._user_id()
        try:
            await self.users_collection.update_one(
                {"_id": user_id},
                {"$set": {"availability": availability_to_doc(availability)}},
                upsert=True,
            )
            logger.info(f"Saved availability for user: {user_id}")
            return availability
        except PyMongoError as e:
            logger.error(f"Failed to save availability for {user_id}: {e}")
            raise self._translate(e, "save availability")

    async def save_user_profile(self, profile: UserProfile) -> UserProfile:
        user_id = self._user_id()
        try:
            await self.users_collection.update_one(
                {"_id": user_id}, {"$set": profile_to_doc(profile)}, upsert=True
            )
            logger.info(f"Saved profile for user: {user_id}")
            return profile
        except PyMongoError as e:
            logger.error(f"Failed to save profile for {user_id}: {e}")
            raise self._translate(e, "save the profile")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def load_meetings(self) -> List[Meeting]:
        """Meetings of the current user, ordered by date."""
        user_id = self._user_id()
        meetings = []
        try:
            cursor = self.meetings_collection.find({"userId": user_id}).sort("date", ASCENDING)
            async for doc in cursor:
                try:
                    meetings.append(doc_to_meeting(doc))
                except ValidationError as e:
                    logger.warning(f"Skipping invalid meeting document {e.document_id}: {e}")
        except PyMongoError as e:
            logger.error(f"Failed to load meetings: {e}")
            raise self._translate(e, "load meetings")
        logger.info(f"Loaded {len(meetings)} meetings")
        return meetings

    async def load_meeting_types(self) -> List[MeetingType]:
        user_id = self._user_id()
        meeting_types = []
        try:
            cursor = self.meeting_types_collection.find({"userId": user_id})
            async for doc in cursor:
                try:
                    meeting_types.append(doc_to_meeting_type(doc))
                except ValidationError as e:
                    logger.warning(f"Skipping invalid meeting type document {e.document_id}: {e}")
        except PyMongoError as e:
            logger.error(f"Failed to load meeting types: {e}")
            raise self._translate(e, "load meeting types")
        logger.info(f"Loaded {len(meeting_types)} meeting types")
        return meeting_types

    async def _get_user_doc(self, user_id: str) -> Optional[Dict[str, Any]]:
        try:
            return await self.users_collection.find_one({"_id": user_id})
        except PyMongoError as e:
            logger.error(f"Failed to load user document {user_id}: {e}")
            raise self._translate(e, "load the user")

    async def load_availability(self) -> Optional[Availability]:
        """Stored availability, or None when absent or invalid."""
        user_id = self._user_id()
        doc = await self._get_user_doc(user_id)
        if not doc or not isinstance(doc.get("availability"), dict):
            logger.info(f"No availability stored for user: {user_id}")
            return None
        try:
            return doc_to_availability(doc["availability"], user_id)
        except ValidationError as e:
            logger.warning(f"Skipping invalid availability for {user_id}: {e}")
            return None

    async def get_user_profile(self) -> Optional[UserProfile]:
        user_id = self._user_id()
        doc = await self._get_user_doc(user_id)
        if not doc:
            return None
        try:
            return doc_to_profile(doc)
        except ValidationError as e:
            logger.warning(f"Skipping invalid profile for {user_id}: {e}")
            return None


# Dependency injection
_dao_instance = None


def set_dao_instance(dao):
    """Set the global DAO instance."""
    global _dao_instance
    _dao_instance = dao


def get_dao():
    """Get DAO instance for dependency injection."""
    global _dao_instance
    if _dao_instance is None:
        raise RuntimeError("DAO instance not initialized. Call set_dao_instance() first.")
    return _dao_instance
