"""
Meeting link orchestration.

Selects the provider for a draft's platform, runs one link-creation attempt
at a time per draft and turns the outcome into a ``MeetingLinkResponse``.
Each attempt is tagged with the draft version at dispatch so a response that
arrives after the user changed the draft is discarded instead of applied.
"""
import logging
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional
from uuid import uuid4

import aiohttp

from shared.config import Settings, get_settings
from shared.errors import InvalidRequest, TimelyError
from shared.schemas import (
    Meeting,
    MeetingLinkResponse,
    MeetingLinkResult,
    MeetingPlatform,
    ensure_aware,
    is_valid_email,
    split_participant_emails,
)
from .base import MeetingLinkProvider
from .google_meet_client import GoogleMeetClient
from .sandbox_client import SandboxMeetingProvider
from .teams_client import MicrosoftTeamsClient
from .zoom_auth import ZoomTokenManager
from .zoom_client import ZoomMeetingClient

logger = logging.getLogger(__name__)


class LinkState(str, Enum):
    """Link-creation state of a draft."""

    IDLE = "idle"
    REQUESTING = "requesting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class MeetingDraft:
    """
    The in-progress meeting being composed.

    Every field that is sent to a provider is exposed as a property whose
    setter bumps ``version``. While a link exists (or is being requested),
    such a change drops the link and returns the draft to ``IDLE``.
    """

    def __init__(
        self,
        title: str = "",
        start_time: Optional[datetime] = None,
        duration: int = 30,
        platform: MeetingPlatform = MeetingPlatform.GOOGLE_MEET,
        participants: Iterable[str] = (),
        meeting_type: str = "",
        timezone: Optional[str] = None,
        draft_id: Optional[str] = None,
    ):
        if duration <= 0:
            raise InvalidRequest("Duration must be greater than zero.")
        self.id = draft_id or str(uuid4())
        self._title = title
        self._start_time = ensure_aware(start_time) if start_time else None
        self._duration = duration
        self._platform = MeetingPlatform(platform)
        self._participants = self._normalize_participants(participants)
        self.meeting_type = meeting_type
        self.timezone = timezone
        self.version = 0
        self.link_state = LinkState.IDLE
        self.link_result: Optional[MeetingLinkResult] = None
        self.error_message: Optional[str] = None

    @staticmethod
    def _normalize_participants(participants: Iterable[str]) -> List[str]:
        emails = split_participant_emails(participants)
        invalid = [email for email in emails if not is_valid_email(email)]
        if invalid:
            raise InvalidRequest(f"Invalid email address: {', '.join(invalid)}")
        return emails

    def _changed(self) -> None:
        self.version += 1
        if self.link_state in (LinkState.SUCCEEDED, LinkState.REQUESTING):
            if self.link_result is not None:
                logger.info(f"Draft {self.id} changed; discarding meeting link")
            self.link_result = None
            self.link_state = LinkState.IDLE
        self.error_message = None

    @property
    def title(self) -> str:
        return self._title

    @title.setter
    def title(self, value: str) -> None:
        if value != self._title:
            self._title = value
            self._changed()

    @property
    def platform(self) -> MeetingPlatform:
        return self._platform

    @platform.setter
    def platform(self, value: MeetingPlatform) -> None:
        value = MeetingPlatform(value)
        if value is not self._platform:
            self._platform = value
            self._changed()

    @property
    def start_time(self) -> Optional[datetime]:
        return self._start_time

    @start_time.setter
    def start_time(self, value: datetime) -> None:
        value = ensure_aware(value)
        if value != self._start_time:
            self._start_time = value
            self._changed()

    @property
    def duration(self) -> int:
        return self._duration

    @duration.setter
    def duration(self, value: int) -> None:
        if value <= 0:
            raise InvalidRequest("Duration must be greater than zero.")
        if value != self._duration:
            self._duration = value
            self._changed()

    @property
    def participants(self) -> List[str]:
        return list(self._participants)

    @participants.setter
    def participants(self, value: Iterable[str]) -> None:
        emails = self._normalize_participants(value)
        if emails != self._participants:
            self._participants = emails
            self._changed()

    def add_participant(self, email: str) -> None:
        self.participants = self._participants + [email]

    def remove_participant(self, email: str) -> None:
        email = email.strip().lower()
        self.participants = [p for p in self._participants if p != email]

    @property
    def is_creating_link(self) -> bool:
        return self.link_state is LinkState.REQUESTING

    @property
    def has_link(self) -> bool:
        return self.link_state is LinkState.SUCCEEDED and self.link_result is not None

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "title": self.title,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "duration": self.duration,
            "platform": self.platform.value,
            "participants": self.participants,
            "meeting_type": self.meeting_type,
            "version": self.version,
            "link_state": self.link_state.value,
            "is_creating_link": self.is_creating_link,
            "meeting_url": self.link_result.meeting_url if self.link_result else None,
            "sandbox": self.link_result.sandbox if self.link_result else False,
            "error_message": self.error_message,
        }


def create_provider_registry(
    settings: Optional[Settings] = None,
    session: Optional[aiohttp.ClientSession] = None,
    token_manager: Optional[ZoomTokenManager] = None,
) -> Dict[MeetingPlatform, MeetingLinkProvider]:
    """Build the platform to provider map."""
    settings = settings or get_settings()
    link_platforms = [p for p in MeetingPlatform if p.requires_link]

    if settings.meeting_links_sandbox:
        logger.warning("Meeting links sandbox mode is ON; no provider will be called")
        return {platform: SandboxMeetingProvider(platform) for platform in link_platforms}

    token_manager = token_manager or ZoomTokenManager(settings=settings, session=session)
    return {
        MeetingPlatform.GOOGLE_MEET: GoogleMeetClient(settings=settings, session=session),
        MeetingPlatform.ZOOM: ZoomMeetingClient(token_manager, settings=settings, session=session),
        MeetingPlatform.MICROSOFT_TEAMS: MicrosoftTeamsClient(settings=settings, session=session),
    }


class MeetingLinkOrchestrator:
    """Runs link creation for drafts against the configured providers."""

    def __init__(
        self,
        providers: Dict[MeetingPlatform, MeetingLinkProvider],
        settings: Optional[Settings] = None,
    ):
        self.providers = providers
        self.settings = settings or get_settings()

    def get_provider(self, platform: MeetingPlatform) -> MeetingLinkProvider:
        provider = self.providers.get(platform)
        if provider is None:
            raise InvalidRequest(f"No meeting link provider for {platform.value}")
        return provider

    async def create_link(self, draft: MeetingDraft) -> MeetingLinkResponse:
        """
        Create a meeting link for the draft.

        Args:
            draft: Draft to create the link for; its state is updated in place

        Returns:
            Normalized response. ``stale`` is set when the result was not
            applied because the draft changed or a request was already running.

        Raises:
            InvalidRequest: the draft has no title or no start time
        """
        if not draft.title.strip():
            raise InvalidRequest("Please enter a meeting title.")

        if not draft.platform.requires_link:
            logger.info(f"Draft {draft.id} is in person; no meeting link needed")
            return MeetingLinkResponse(success=True)

        if draft.is_creating_link:
            logger.warning(f"Link creation already running for draft {draft.id}; ignoring trigger")
            return MeetingLinkResponse.failure(
                "A meeting link is already being created.", stale=True
            )

        if draft.start_time is None:
            raise InvalidRequest("Please choose a start time.")

        provider = self.get_provider(draft.platform)
        dispatched_version = draft.version
        draft.link_state = LinkState.REQUESTING
        draft.link_result = None
        draft.error_message = None

        try:
            try:
                result = await provider.create_meeting(
                    draft.title,
                    draft.start_time,
                    draft.duration,
                    draft.participants,
                    draft.timezone or self.settings.default_timezone,
                )
            except TimelyError as e:
                if draft.version != dispatched_version:
                    logger.info(f"Discarding failed link response for changed draft {draft.id}")
                    return MeetingLinkResponse.failure(e.message, retryable=e.retryable, stale=True)
                logger.error(f"{provider.name} link creation failed for draft {draft.id}: {e}")
                draft.link_state = LinkState.FAILED
                draft.error_message = e.message
                return MeetingLinkResponse.failure(e.message, retryable=e.retryable)

            response = MeetingLinkResponse.from_result(result)
            if draft.version != dispatched_version:
                logger.info(f"Discarding late {provider.name} link for changed draft {draft.id}")
                response.stale = True
                return response

            draft.link_state = LinkState.SUCCEEDED
            draft.link_result = result
            logger.info(f"Created {provider.name} link for draft {draft.id}")
            return response
        finally:
            # Cancellation or an unexpected error must not leave the draft spinning
            if draft.link_state is LinkState.REQUESTING and draft.version == dispatched_version:
                draft.link_state = LinkState.IDLE

    def build_meeting(self, draft: MeetingDraft) -> Meeting:
        """Turn a completed draft into a meeting ready to be saved."""
        if not draft.title.strip():
            raise InvalidRequest("Please enter a meeting title.")
        if draft.start_time is None:
            raise InvalidRequest("Please choose a start time.")
        if not draft.participants:
            raise InvalidRequest("Please add at least one participant.")
        if draft.platform.requires_link and not draft.has_link:
            raise InvalidRequest("Please create a meeting link first.")

        link = draft.link_result if draft.platform.requires_link else None
        return Meeting(
            id=draft.id,
            title=draft.title.strip(),
            date=draft.start_time,
            duration=draft.duration,
            platform=draft.platform,
            participant_emails=draft.participants,
            meeting_type=draft.meeting_type or self.settings.default_meeting_type_label,
            meeting_url=link.meeting_url if link else None,
            external_meeting_id=link.meeting_id if link else None,
            password=link.password if link else None,
            dial_in_number=link.dial_in_number if link else None,
        )

    async def cleanup(self) -> None:
        for provider in self.providers.values():
            await provider.cleanup()
