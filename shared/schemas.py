"""
Shared Pydantic schemas for the Timely scheduling system.
"""
import re
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Set
from uuid import uuid4
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator

EMAIL_PATTERN = re.compile(r"^[A-Z0-9a-z._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,64}$")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.match(email or ""))


def split_participant_emails(value: Any) -> List[str]:
    """Normalize a participant list or a comma-joined participant string.

    Emails are stripped, lower-cased and de-duplicated in order of appearance.
    """
    if value is None:
        return []
    if isinstance(value, str):
        items: Iterable[str] = re.split(r"[,;]", value)
    else:
        items = value
    emails: List[str] = []
    for item in items:
        email = str(item).strip().lower()
        if email and email not in emails:
            emails.append(email)
    return emails


def resolve_timezone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {name}") from e


class MeetingPlatform(str, Enum):
    """Meeting platform enumeration.

    Values are the display labels stored in remote documents.
    """

    GOOGLE_MEET = "Google Meet"
    ZOOM = "Zoom"
    MICROSOFT_TEAMS = "Microsoft Teams"
    IN_PERSON = "In Person"

    @classmethod
    def _missing_(cls, value):
        if not isinstance(value, str):
            return None
        normalized = value.strip().lower().replace("-", " ").replace("_", " ")
        aliases = {
            "google meet": cls.GOOGLE_MEET,
            "googlemeet": cls.GOOGLE_MEET,
            "zoom": cls.ZOOM,
            "microsoft teams": cls.MICROSOFT_TEAMS,
            "teams": cls.MICROSOFT_TEAMS,
            "in person": cls.IN_PERSON,
            "inperson": cls.IN_PERSON,
            # label written by the first mobile client
            "yüz yüze": cls.IN_PERSON,
        }
        return aliases.get(normalized)

    @property
    def requires_link(self) -> bool:
        return self is not MeetingPlatform.IN_PERSON


class WeekDay(str, Enum):
    """Working weekday enumeration."""

    MONDAY = "Monday"
    TUESDAY = "Tuesday"
    WEDNESDAY = "Wednesday"
    THURSDAY = "Thursday"
    FRIDAY = "Friday"
    SATURDAY = "Saturday"
    SUNDAY = "Sunday"

    @classmethod
    def _missing_(cls, value):
        if not isinstance(value, str):
            return None
        normalized = value.strip().lower()
        for day in cls:
            if day.value.lower() == normalized:
                return day
        legacy = {
            "pazartesi": cls.MONDAY,
            "salı": cls.TUESDAY,
            "çarşamba": cls.WEDNESDAY,
            "perşembe": cls.THURSDAY,
            "cuma": cls.FRIDAY,
            "cumartesi": cls.SATURDAY,
            "pazar": cls.SUNDAY,
        }
        return legacy.get(normalized)

    @property
    def iso_weekday(self) -> int:
        return list(WeekDay).index(self) + 1

    @classmethod
    def from_iso_weekday(cls, number: int) -> "WeekDay":
        return list(cls)[number - 1]


class Meeting(BaseModel):
    """A scheduled meeting."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    title: str
    date: datetime
    duration: int = Field(..., gt=0)
    platform: MeetingPlatform
    participant_emails: List[str] = Field(default_factory=list)
    meeting_type: str
    meeting_url: Optional[str] = None
    external_meeting_id: Optional[str] = None
    password: Optional[str] = None
    dial_in_number: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("date", "created_at")
    @classmethod
    def _aware(cls, value: datetime) -> datetime:
        return ensure_aware(value)

    @field_validator("participant_emails", mode="before")
    @classmethod
    def _participants(cls, value: Any) -> List[str]:
        return split_participant_emails(value)

    @property
    def end_time(self) -> datetime:
        return self.date + timedelta(minutes=self.duration)

    @property
    def participant_email(self) -> str:
        """Comma-joined participant string, as stored remotely."""
        return ", ".join(self.participant_emails)


class MeetingType(BaseModel):
    """A reusable meeting template."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str
    duration: int = Field(..., gt=0)
    platform: MeetingPlatform
    description: str = ""


class Availability(BaseModel):
    """Weekly availability profile; one per user, replaced wholesale."""

    work_days: Set[WeekDay]
    start_time: datetime
    end_time: datetime
    timezone: str = "UTC"
    updated_at: Optional[datetime] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def _aware(cls, value: datetime) -> datetime:
        return ensure_aware(value)

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        resolve_timezone(value)
        return value

    @classmethod
    def default(cls, tz: str = "UTC", today: Optional[datetime] = None) -> "Availability":
        """Monday to Friday, 09:00 to 17:00 in the given timezone."""
        zone = resolve_timezone(tz)
        base = (today or utc_now()).astimezone(zone)
        start = base.replace(hour=9, minute=0, second=0, microsecond=0)
        end = base.replace(hour=17, minute=0, second=0, microsecond=0)
        return cls(
            work_days={
                WeekDay.MONDAY,
                WeekDay.TUESDAY,
                WeekDay.WEDNESDAY,
                WeekDay.THURSDAY,
                WeekDay.FRIDAY,
            },
            start_time=start,
            end_time=end,
            timezone=tz,
        )

    def _minutes_of_day(self, value: datetime) -> int:
        local = value.astimezone(resolve_timezone(self.timezone))
        return local.hour * 60 + local.minute

    @property
    def start_minutes(self) -> int:
        return self._minutes_of_day(self.start_time)

    @property
    def end_minutes(self) -> int:
        return self._minutes_of_day(self.end_time)

    def is_time_slot_available(self, instant: datetime) -> bool:
        """Whether the instant falls on a work day within working hours."""
        local = ensure_aware(instant).astimezone(resolve_timezone(self.timezone))
        if WeekDay.from_iso_weekday(local.isoweekday()) not in self.work_days:
            return False
        minutes = local.hour * 60 + local.minute
        return self.start_minutes <= minutes <= self.end_minutes

    def validate_for_save(self) -> List[str]:
        """Problems a form should report before saving; empty when fine."""
        problems = []
        if not self.work_days:
            problems.append("Select at least one working day.")
        if self.start_minutes >= self.end_minutes:
            problems.append("Start time must be before end time.")
        return problems


class Contact(BaseModel):
    """A person the user has met with."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str
    email: str
    meeting_count: int = 0

    @staticmethod
    def name_from_email(email: str) -> str:
        local_part = email.split("@")[0] if email else ""
        if not local_part:
            return "Unknown"
        return local_part.replace(".", " ").replace("_", " ").title()


class UserProfile(BaseModel):
    """User profile stored on the user document."""

    id: str
    first_name: str
    last_name: str = ""
    email: str
    purpose: str = ""
    scheduling_preference: str = ""
    calendar_provider: str = ""
    is_onboarding_completed: bool = False
    created_at: datetime = Field(default_factory=utc_now)
    phone_number: str = ""
    avatar_url: str = ""

    @property
    def display_name(self) -> str:
        if not self.last_name:
            return self.first_name
        return f"{self.first_name} {self.last_name}"


class MeetingLinkResult(BaseModel):
    """Meeting descriptor returned by a conferencing provider."""

    meeting_url: str
    meeting_id: str
    password: Optional[str] = None
    dial_in_number: Optional[str] = None
    platform: MeetingPlatform
    sandbox: bool = False


class MeetingLinkResponse(BaseModel):
    """Normalized outcome of one link-creation attempt."""

    success: bool
    meeting_url: Optional[str] = None
    meeting_id: Optional[str] = None
    password: Optional[str] = None
    dial_in_number: Optional[str] = None
    error_message: Optional[str] = None
    retryable: bool = False
    stale: bool = False
    sandbox: bool = False

    @classmethod
    def from_result(cls, result: MeetingLinkResult) -> "MeetingLinkResponse":
        return cls(
            success=True,
            meeting_url=result.meeting_url,
            meeting_id=result.meeting_id,
            password=result.password,
            dial_in_number=result.dial_in_number,
            sandbox=result.sandbox,
        )

    @classmethod
    def failure(
        cls, message: str, retryable: bool = False, stale: bool = False
    ) -> "MeetingLinkResponse":
        return cls(success=False, error_message=message, retryable=retryable, stale=stale)


class ZoomAccessToken(BaseModel):
    """Cached Zoom bearer token."""

    access_token: str
    expires_at: datetime

    def is_valid(self, now: datetime, margin_seconds: int = 300) -> bool:
        return self.expires_at > now + timedelta(seconds=margin_seconds)


class AuthSession(BaseModel):
    """Signed-in identity returned by the identity service."""

    user_id: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    id_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    provider_id: str = "password"
    metadata: Dict[str, Any] = Field(default_factory=dict)
