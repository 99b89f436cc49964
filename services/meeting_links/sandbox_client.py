"""
Sandbox provider for demos and local development.

Returns structurally valid, non-functional meeting descriptors. It is only
ever selected when ``MEETING_LINKS_SANDBOX`` is enabled; real clients never
fall back to it.
"""
import logging
from datetime import datetime
from typing import List, Optional
from uuid import uuid4

from shared.schemas import MeetingLinkResult, MeetingPlatform
from .base import MeetingLinkProvider

logger = logging.getLogger(__name__)

SANDBOX_HOST = "sandbox.invalid"


class SandboxMeetingProvider(MeetingLinkProvider):
    """Placeholder links for one platform, clearly marked ``sandbox``."""

    def __init__(self, platform: MeetingPlatform):
        super().__init__(session=None, max_retries=0)
        self.platform = platform
        self.created: List[MeetingLinkResult] = []

    async def create_meeting(
        self,
        title: str,
        start_time: datetime,
        duration_minutes: int,
        participant_emails: List[str],
        timezone: Optional[str] = None,
    ) -> MeetingLinkResult:
        meeting_id = uuid4().hex[:11]
        slug = self.platform.name.lower().replace("_", "-")
        result = MeetingLinkResult(
            meeting_url=f"https://{SANDBOX_HOST}/{slug}/{meeting_id}",
            meeting_id=f"sandbox-{meeting_id}",
            password="000000" if self.platform is MeetingPlatform.ZOOM else None,
            platform=self.platform,
            sandbox=True,
        )
        self.created.append(result)
        logger.warning(f"Sandbox mode: issued placeholder {self.name} link {result.meeting_url}")
        return result
