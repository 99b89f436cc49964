"""
Microsoft Teams client for creating online meetings.

This module creates Teams meetings through the Microsoft Graph
``onlineMeetings`` endpoint using an application token obtained with MSAL.
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import aiohttp
from msal import ConfidentialClientApplication

from shared.config import Settings, get_settings
from shared.errors import AuthenticationFailed, AuthenticationRequired, ProviderApiError
from shared.schemas import MeetingLinkResult, MeetingPlatform
from .base import MeetingLinkProvider, format_utc

logger = logging.getLogger(__name__)

GRAPH_SCOPES = ["https://graph.microsoft.com/.default"]


class MicrosoftTeamsClient(MeetingLinkProvider):
    """Client for creating Microsoft Teams online meetings."""

    platform = MeetingPlatform.MICROSOFT_TEAMS

    def __init__(
        self,
        settings: Optional[Settings] = None,
        session: Optional[aiohttp.ClientSession] = None,
        app: Optional[ConfidentialClientApplication] = None,
    ):
        self.settings = settings or get_settings()
        super().__init__(
            session=session,
            timeout_seconds=self.settings.http_timeout_seconds,
            max_retries=self.settings.http_max_retries,
        )
        self.app = app

    def _get_app(self) -> ConfidentialClientApplication:
        if self.app is None:
            self.app = ConfidentialClientApplication(
                client_id=self.settings.ms_client_id,
                client_credential=self.settings.ms_client_secret,
                authority=f"https://login.microsoftonline.com/{self.settings.ms_tenant_id}",
            )
        return self.app

    async def _get_access_token(self) -> str:
        if not self.settings.teams_configured:
            raise AuthenticationRequired(
                "Microsoft Teams is not configured. Please set MS_CLIENT_ID, "
                "MS_CLIENT_SECRET and MS_ORGANIZER_USER_ID"
            )

        # MSAL is synchronous; keep the event loop free
        result = await asyncio.to_thread(self._get_app().acquire_token_for_client, scopes=GRAPH_SCOPES)
        if not result or "access_token" not in result:
            description = (result or {}).get("error_description") or (result or {}).get("error")
            logger.error(f"Microsoft authentication failed: {description}")
            raise AuthenticationFailed("Microsoft authentication failed. Check the Teams app credentials.")

        logger.info("Microsoft authentication via client credentials completed")
        return result["access_token"]

    def build_payload(
        self,
        title: str,
        start_time: datetime,
        duration_minutes: int,
        participant_emails: List[str],
    ) -> Dict[str, Any]:
        end_time = start_time + timedelta(minutes=duration_minutes)
        return {
            "subject": title,
            "startDateTime": format_utc(start_time, with_millis=True),
            "endDateTime": format_utc(end_time, with_millis=True),
            "participants": {
                "attendees": [
                    {"upn": email, "role": "attendee"} for email in participant_emails
                ]
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
        token = await self._get_access_token()
        payload = self.build_payload(title, start_time, duration_minutes, participant_emails)
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        url = f"{self.settings.graph_base_url}/users/{self.settings.ms_organizer_user_id}/onlineMeetings"

        meeting = await self._post_json(url, payload, headers, expected_status=201)

        join_url = meeting.get("joinWebUrl")
        meeting_id = meeting.get("id")
        if not join_url or not meeting_id:
            raise ProviderApiError("Graph response is missing joinWebUrl or id", 201, self.name)

        audio = meeting.get("audioConferencing") or {}
        join_settings = meeting.get("joinMeetingIdSettings") or {}
        logger.info(f"Successfully created Teams meeting: {meeting_id}")
        return MeetingLinkResult(
            meeting_url=join_url,
            meeting_id=meeting_id,
            password=join_settings.get("passcode"),
            dial_in_number=audio.get("tollNumber"),
            platform=self.platform,
        )
