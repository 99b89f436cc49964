"""
Timely composition root.

Builds every service explicitly, wires them together and owns their
lifecycle. The API process creates exactly one ``TimelyApp``; tests build
their own with fakes injected.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import aiohttp

from shared.config import Settings, get_settings
from shared.errors import AuthenticationRequired, InvalidRequest, TimelyError
from shared.schemas import AuthSession, Meeting, MeetingLinkResponse, MeetingPlatform, UserProfile
from services.api.dao import MongoDBDAO
from services.auth.gateway import AuthGateway
from services.meeting_links.base import MeetingLinkProvider
from services.meeting_links.orchestrator import (
    MeetingDraft,
    MeetingLinkOrchestrator,
    create_provider_registry,
)
from services.notifications.invitations import InvitationReport, InvitationService
from .store import TimelyStore

logger = logging.getLogger(__name__)

DRAFT_FIELDS = ("title", "start_time", "duration", "platform", "participants", "meeting_type", "timezone")


@dataclass
class ScheduleOutcome:
    meeting: Meeting
    invitations: InvitationReport


class TimelyApp:
    """Owns the services of one Timely process."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        session: Optional[aiohttp.ClientSession] = None,
        database=None,
        providers: Optional[Dict[MeetingPlatform, MeetingLinkProvider]] = None,
        invitation_service: Optional[InvitationService] = None,
    ):
        self.settings = settings or get_settings()
        self.session = session
        self._owns_session = session is None
        self._database = database
        self._providers = providers
        self.invitations = invitation_service or InvitationService(self.settings)
        self.auth: Optional[AuthGateway] = None
        self.dao: Optional[MongoDBDAO] = None
        self.store: Optional[TimelyStore] = None
        self.orchestrator: Optional[MeetingLinkOrchestrator] = None
        self.drafts: Dict[str, MeetingDraft] = {}
        self.started = False

    async def start(self) -> None:
        """Create the shared HTTP session and every service."""
        if self.started:
            return
        logger.info("Starting Timely services...")
        if self.session is None:
            self.session = aiohttp.ClientSession()
            self._owns_session = True

        self.auth = AuthGateway(self.settings, session=self.session)
        self.dao = MongoDBDAO(self.auth, self.settings, database=self._database)
        await self.dao.initialize()
        self.store = TimelyStore(self.dao, self.auth, self.settings)

        providers = self._providers or create_provider_registry(self.settings, self.session)
        self.orchestrator = MeetingLinkOrchestrator(providers, self.settings)

        self.auth.add_listener(self._on_session_changed)
        self.started = True
        logger.info("Timely services started")

    async def close(self) -> None:
        if not self.started:
            return
        logger.info("Shutting down Timely services...")
        self.auth.remove_listener(self._on_session_changed)
        await self.orchestrator.cleanup()
        await self.auth.cleanup()
        await self.dao.close()
        if self.session is not None and self._owns_session:
            await self.session.close()
            self.session = None
        self.started = False

    async def _on_session_changed(self, session: Optional[AuthSession]) -> None:
        if session is None:
            self.drafts.clear()
            self.store.reset()
            return
        await self.store.load_all()

    # ------------------------------------------------------------------
    # Account
    # ------------------------------------------------------------------

    async def create_account(
        self, email: str, password: str, first_name: str, last_name: str = ""
    ) -> UserProfile:
        """Create the account and its profile document."""
        session = await self.auth.create_account(email, password, first_name, last_name)
        profile = UserProfile(
            id=session.user_id,
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            email=session.email or email.strip().lower(),
        )
        await self.dao.save_user_profile(profile)
        return profile

    async def get_profile(self) -> Optional[UserProfile]:
        return await self.dao.get_user_profile()

    async def update_profile(self, **changes: Any) -> UserProfile:
        profile = await self.get_profile()
        if profile is None:
            session = self.auth.session
            if session is None:
                raise AuthenticationRequired()
            profile = UserProfile(
                id=session.user_id,
                first_name=changes.pop("first_name", None) or session.display_name or "",
                email=session.email or "",
            )
        profile = profile.model_copy(update={k: v for k, v in changes.items() if v is not None})
        return await self.dao.save_user_profile(profile)

    # ------------------------------------------------------------------
    # Drafts
    # ------------------------------------------------------------------

    def new_draft(self, **fields: Any) -> MeetingDraft:
        self.auth.require_user_id()
        fields = {k: v for k, v in fields.items() if k in DRAFT_FIELDS and v is not None}
        fields.setdefault("timezone", self.store.availability.timezone)
        draft = MeetingDraft(**fields)
        self.drafts[draft.id] = draft
        return draft

    def get_draft(self, draft_id: str) -> MeetingDraft:
        draft = self.drafts.get(draft_id)
        if draft is None:
            raise InvalidRequest(f"Unknown draft: {draft_id}")
        return draft

    def update_draft(self, draft_id: str, **changes: Any) -> MeetingDraft:
        """Apply field changes; any change to a provider field invalidates the link."""
        draft = self.get_draft(draft_id)
        for name, value in changes.items():
            if name in DRAFT_FIELDS and value is not None:
                setattr(draft, name, value)
        return draft

    def discard_draft(self, draft_id: str) -> None:
        self.drafts.pop(draft_id, None)

    async def create_link(self, draft_id: str) -> MeetingLinkResponse:
        return await self.orchestrator.create_link(self.get_draft(draft_id))

    async def schedule_meeting(self, draft_id: str, send_invitations: bool = True) -> ScheduleOutcome:
        """
        Save the draft as a meeting and email the participants.

        The meeting is added optimistically; a failed remote write rolls it
        back and propagates. Invitation failures are reported, not raised.
        The draft is taken out of the registry before the write, so a second
        submission of the same draft fails instead of saving it twice.
        """
        draft = self.get_draft(draft_id)
        meeting = self.orchestrator.build_meeting(draft)
        self.discard_draft(draft_id)
        try:
            await self.store.add_meeting(meeting)
        except TimelyError:
            self.drafts[draft_id] = draft
            raise

        report = InvitationReport()
        if send_invitations:
            organizer = self.auth.session.display_name if self.auth.session else None
            report = await self.invitations.send_invitations(meeting, organizer)
        return ScheduleOutcome(meeting=meeting, invitations=report)
