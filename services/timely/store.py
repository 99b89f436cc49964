"""
Local state store.

Holds the signed-in user's meetings, meeting types, contacts and
availability. Mutations are applied locally first and then written to the
remote store; a failed write rolls the local change back and re-raises.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional, Set

from shared.config import Settings, get_settings
from shared.errors import AuthenticationRequired, InvalidRequest, TimelyError
from shared.schemas import (
    Availability,
    Contact,
    Meeting,
    MeetingPlatform,
    MeetingType,
    is_valid_email,
    utc_now,
)

logger = logging.getLogger(__name__)


def default_meeting_types() -> List[MeetingType]:
    """Starter templates shown until the user saves their own."""
    return [
        MeetingType(
            name="30 Minutes - General Call",
            duration=30,
            platform=MeetingPlatform.GOOGLE_MEET,
            description="Short and efficient conversations",
        ),
        MeetingType(
            name="60 Minutes - Deep Dive",
            duration=60,
            platform=MeetingPlatform.GOOGLE_MEET,
            description="Longer, detailed discussions",
        ),
        MeetingType(
            name="Consulting",
            duration=45,
            platform=MeetingPlatform.ZOOM,
            description="Professional consulting sessions",
        ),
    ]


def derive_contacts(
    meetings: List[Meeting],
    existing: List[Contact],
    keep_emails: Optional[Set[str]] = None,
) -> List[Contact]:
    """
    Rebuild contacts from meetings.

    Each meeting counts once per participant email. Existing contacts whose
    email appears in no meeting are kept (only those in ``keep_emails`` when
    given); existing ids and names are reused for emails that do appear.
    """
    known: Dict[str, Contact] = {contact.email.lower(): contact for contact in existing}
    derived: Dict[str, Contact] = {}
    for meeting in meetings:
        for email in dict.fromkeys(meeting.participant_emails):
            contact = derived.get(email)
            if contact is None:
                previous = known.get(email)
                contact = Contact(name=Contact.name_from_email(email), email=email)
                if previous:
                    contact.id = previous.id
                    contact.name = previous.name
                derived[email] = contact
            contact.meeting_count += 1

    contacts = list(derived.values())
    for email, contact in known.items():
        if email in derived:
            continue
        if keep_emails is None or email in keep_emails:
            contacts.append(contact.model_copy(update={"meeting_count": 0}))
    return contacts


class TimelyStore:
    """In-memory collections for the signed-in user, synced to the remote store."""

    def __init__(self, dao, auth, settings: Optional[Settings] = None):
        self.dao = dao
        self.auth = auth
        self.settings = settings or get_settings()
        self.meetings: List[Meeting] = []
        self.meeting_types: List[MeetingType] = default_meeting_types()
        self.contacts: List[Contact] = []
        self._manual_contact_emails: Set[str] = set()
        self.availability: Availability = Availability.default(self.settings.default_timezone)
        self.is_loading = False

    def _require_user(self) -> str:
        user_id = self.auth.current_user_id
        if not user_id:
            raise AuthenticationRequired()
        return user_id

    def _recompute_contacts(self) -> None:
        self.contacts = derive_contacts(self.meetings, self.contacts, self._manual_contact_emails)

    async def add_meeting(self, meeting: Meeting) -> Meeting:
        """
        Add a meeting optimistically.

        Raises:
            AuthenticationRequired: nobody is signed in; nothing is changed
            InvalidRequest: a meeting with the same id is already held
            PersistenceError: the remote write failed; the meeting is removed again
        """
        self._require_user()
        if any(m.id == meeting.id for m in self.meetings):
            raise InvalidRequest(f"Meeting {meeting.id} already exists")
        self.meetings.append(meeting)
        self._recompute_contacts()
        try:
            await self.dao.save_meeting(meeting)
        except TimelyError as e:
            logger.error(f"Saving meeting {meeting.id} failed, rolling back: {e}")
            self.meetings = [m for m in self.meetings if m is not meeting]
            self._recompute_contacts()
            raise
        logger.info(f"Meeting added: {meeting.id}")
        return meeting

    async def add_meeting_type(self, meeting_type: MeetingType) -> MeetingType:
        self._require_user()
        if any(t.id == meeting_type.id for t in self.meeting_types):
            raise InvalidRequest(f"Meeting type {meeting_type.id} already exists")
        self.meeting_types.append(meeting_type)
        try:
            await self.dao.save_meeting_type(meeting_type)
        except TimelyError as e:
            logger.error(f"Saving meeting type {meeting_type.id} failed, rolling back: {e}")
            self.meeting_types = [t for t in self.meeting_types if t is not meeting_type]
            raise
        logger.info(f"Meeting type added: {meeting_type.id}")
        return meeting_type

    async def replace_availability(self, availability: Availability) -> Availability:
        """Replace availability wholesale; rolled back like every other mutation."""
        self._require_user()
        previous = self.availability
        updated = availability.model_copy(update={"updated_at": utc_now()})
        self.availability = updated
        try:
            await self.dao.save_availability(updated)
        except TimelyError as e:
            # A newer replacement made while this write was pending wins
            if self.availability is updated:
                logger.error(f"Saving availability failed, rolling back: {e}")
                self.availability = previous
            raise
        logger.info("Availability updated")
        return updated

    def add_contact(self, name: str, email: str) -> Contact:
        """Add a contact by hand. An existing contact with the same email is returned as is."""
        email = (email or "").strip().lower()
        if not is_valid_email(email):
            raise InvalidRequest("Please enter a valid email address.")
        for contact in self.contacts:
            if contact.email == email:
                return contact
        contact = Contact(name=name.strip() or Contact.name_from_email(email), email=email)
        self._manual_contact_emails.add(email)
        self.contacts.append(contact)
        return contact

    def is_time_slot_available(self, instant: datetime) -> bool:
        return self.availability.is_time_slot_available(instant)

    def upcoming_meetings(self, now: Optional[datetime] = None) -> List[Meeting]:
        now = now or utc_now()
        return sorted((m for m in self.meetings if m.end_time >= now), key=lambda m: m.date)

    def monthly_stats(self, now: Optional[datetime] = None) -> Dict[str, int]:
        now = now or utc_now()
        monthly = [m for m in self.meetings if (m.date.year, m.date.month) == (now.year, now.month)]
        return {"meetings": len(monthly), "contacts": len(self.contacts)}

    async def load_all(self) -> None:
        """Refresh every collection from the remote store."""
        self._require_user()
        self.is_loading = True
        try:
            availability = await self.dao.load_availability()
            self.availability = availability or Availability.default(self.settings.default_timezone)

            meeting_types = await self.dao.load_meeting_types()
            self.meeting_types = meeting_types or default_meeting_types()

            meetings = await self.dao.load_meetings()
            self.meetings = sorted(meetings, key=lambda m: m.date)
            self._recompute_contacts()
        finally:
            self.is_loading = False
        logger.info(
            f"Loaded {len(self.meetings)} meetings, {len(self.meeting_types)} meeting types, "
            f"{len(self.contacts)} contacts"
        )

    def reset(self) -> None:
        """Drop the signed-out user's data."""
        self.meetings = []
        self.meeting_types = default_meeting_types()
        self.contacts = []
        self.availability = Availability.default(self.settings.default_timezone)
        self._manual_contact_emails = set()
