"""
Zoom client for creating scheduled meetings.

Uses the account-level token from ``ZoomTokenManager`` and the Zoom REST
``/users/me/meetings`` endpoint.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import aiohttp

from shared.config import Settings, get_settings
from shared.errors import ProviderApiError
from shared.schemas import MeetingLinkResult, MeetingPlatform
from .base import MeetingLinkProvider, format_utc
from .zoom_auth import ZoomTokenManager

logger = logging.getLogger(__name__)


class ZoomMeetingClient(MeetingLinkProvider):
    """Client for creating Zoom meetings."""

    platform = MeetingPlatform.ZOOM

    def __init__(
        self,
        token_manager: ZoomTokenManager,
        settings: Optional[Settings] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.settings = settings or get_settings()
        super().__init__(
            session=session,
            timeout_seconds=self.settings.http_timeout_seconds,
            max_retries=self.settings.http_max_retries,
        )
        self.token_manager = token_manager

    def build_payload(
        self,
        title: str,
        start_time: datetime,
        duration_minutes: int,
        timezone: str,
    ) -> Dict[str, Any]:
        """Meeting body according to the Zoom meetingCreate API."""
        return {
            "topic": title,
            "type": 2,  # Scheduled meeting
            "start_time": format_utc(start_time),
            "duration": duration_minutes,
            "timezone": timezone,
            "settings": {
                "host_video": True,
                "participant_video": True,
                "join_before_host": False,
                "mute_upon_entry": True,
                "waiting_room": True,
                "use_pmi": False,
                "approval_type": 0,
                "audio": "both",
                "auto_recording": "none",
            },
        }

    async def create_meeting(
        self,
        title: str,
        start_time: datetime,
        duration_minutes: int,
        participant_emails: List[str],
        timezone: Optional[str] = None,
    ) -> MeetingLinkResult:
        # Token first; a failure here must not reach the meeting endpoint
        token = await self.token_manager.get_access_token()

        payload = self.build_payload(
            title, start_time, duration_minutes, timezone or self.settings.default_timezone
        )
        headers = {
            "Authorization": f"Bearer {token.access_token}",
            "Content-Type": "application/json",
        }
        if participant_emails:
            # Zoom has no invitee list for scheduled meetings; invitations go out by email
            logger.info(f"Zoom meeting will be shared with {len(participant_emails)} participants by email")

        api_url = f"{self.settings.zoom_api_base_url}/users/me/meetings"
        try:
            zoom_response = await self._post_json(api_url, payload, headers, expected_status=201)
        except ProviderApiError as e:
            if e.status_code == 401:
                self.token_manager.invalidate()
            raise

        meeting_id = zoom_response.get("id")
        join_url = zoom_response.get("join_url")
        if not meeting_id or not join_url:
            raise ProviderApiError("Zoom response is missing id or join_url", 201, self.name)

        logger.info(f"Successfully created Zoom meeting via API: {meeting_id}")
        return MeetingLinkResult(
            meeting_url=join_url,
            meeting_id=str(meeting_id),
            password=zoom_response.get("password") or None,
            dial_in_number=self._extract_dial_in_number(zoom_response),
            platform=self.platform,
        )

    @staticmethod
    def _extract_dial_in_number(zoom_response: Dict[str, Any]) -> Optional[str]:
        numbers = (zoom_response.get("settings") or {}).get("global_dial_in_numbers") or []
        for entry in numbers:
            if isinstance(entry, dict) and entry.get("number"):
                return entry["number"]
        return None
