"""
Google Meet client.

Meet links are minted by creating a Google Calendar event with a
``hangoutsMeet`` conference request on the user's primary calendar.
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from uuid import uuid4

import aiohttp
from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials

from shared.config import Settings, get_settings
from shared.errors import AuthenticationFailed, AuthenticationRequired, ProviderApiError
from shared.schemas import MeetingLinkResult, MeetingPlatform
from .base import MeetingLinkProvider, format_utc

logger = logging.getLogger(__name__)

# Google Calendar API scopes
SCOPES = ["https://www.googleapis.com/auth/calendar"]


def credentials_from_settings(settings: Settings) -> Optional[Credentials]:
    """Build OAuth credentials from configured tokens, if any."""
    if not settings.google_access_token and not settings.google_refresh_token:
        return None
    return Credentials(
        token=settings.google_access_token,
        refresh_token=settings.google_refresh_token,
        token_uri=settings.google_token_uri,
        client_id=settings.google_client_id,
        client_secret=settings.google_client_secret,
        scopes=SCOPES,
    )


class GoogleMeetClient(MeetingLinkProvider):
    """Client for creating Google Meet conferences via Calendar events."""

    platform = MeetingPlatform.GOOGLE_MEET

    def __init__(
        self,
        credentials: Optional[Credentials] = None,
        settings: Optional[Settings] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.settings = settings or get_settings()
        super().__init__(
            session=session,
            timeout_seconds=self.settings.http_timeout_seconds,
            max_retries=self.settings.http_max_retries,
        )
        self.credentials = credentials if credentials is not None else credentials_from_settings(self.settings)
        self._refresh_lock = asyncio.Lock()

    async def _get_access_token(self) -> str:
        """Return a bearer token, refreshing expired credentials in a worker thread."""
        if self.credentials is None:
            raise AuthenticationRequired("Connect a Google account to create Google Meet links.")

        async with self._refresh_lock:
            if self.credentials.valid:
                return self.credentials.token
            if not self.credentials.refresh_token:
                raise AuthenticationRequired("Google access token expired. Please reconnect Google.")
            try:
                await asyncio.to_thread(self.credentials.refresh, Request())
            except RefreshError as e:
                logger.error(f"Failed to refresh Google credentials: {e}")
                raise AuthenticationFailed("Google authentication failed. Please reconnect Google.") from e
            logger.info("Refreshed Google OAuth credentials")
            return self.credentials.token

    def build_payload(
        self,
        title: str,
        start_time: datetime,
        duration_minutes: int,
        participant_emails: List[str],
        timezone: str,
    ) -> Dict[str, Any]:
        end_time = start_time + timedelta(minutes=duration_minutes)
        return {
            "summary": title,
            "start": {"dateTime": format_utc(start_time), "timeZone": timezone},
            "end": {"dateTime": format_utc(end_time), "timeZone": timezone},
            "attendees": [{"email": email} for email in participant_emails],
            "conferenceData": {
                "createRequest": {
                    "requestId": str(uuid4()),
                    "conferenceSolutionKey": {"type": "hangoutsMeet"},
                }
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
        payload = self.build_payload(
            title,
            start_time,
            duration_minutes,
            participant_emails,
            timezone or self.settings.default_timezone,
        )
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        url = f"{self.settings.google_calendar_base_url}/calendars/primary/events?conferenceDataVersion=1"

        event = await self._post_json(url, payload, headers, expected_status=200)

        hangout_link = event.get("hangoutLink")
        event_id = event.get("id")
        if not hangout_link or not event_id:
            raise ProviderApiError("Google Calendar event has no Meet link", 200, self.name)

        dial_in, pin = self._extract_phone_entry(event)
        logger.info(f"Successfully created Google Meet event: {event_id}")
        return MeetingLinkResult(
            meeting_url=hangout_link,
            meeting_id=event_id,
            password=pin,
            dial_in_number=dial_in,
            platform=self.platform,
        )

    @staticmethod
    def _extract_phone_entry(event: Dict[str, Any]):
        entry_points = (event.get("conferenceData") or {}).get("entryPoints") or []
        for entry in entry_points:
            if isinstance(entry, dict) and entry.get("entryPointType") == "phone":
                number = entry.get("label") or (entry.get("uri") or "").replace("tel:", "")
                return number or None, entry.get("pin")
        return None, None
