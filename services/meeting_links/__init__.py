"""
Meeting link providers and orchestration.
"""
from .base import MeetingLinkProvider
from .google_meet_client import GoogleMeetClient
from .orchestrator import LinkState, MeetingDraft, MeetingLinkOrchestrator, create_provider_registry
from .sandbox_client import SandboxMeetingProvider
from .teams_client import MicrosoftTeamsClient
from .zoom_auth import ZoomTokenManager
from .zoom_client import ZoomMeetingClient

__all__ = [
    "MeetingLinkProvider",
    "GoogleMeetClient",
    "ZoomMeetingClient",
    "ZoomTokenManager",
    "MicrosoftTeamsClient",
    "SandboxMeetingProvider",
    "MeetingDraft",
    "MeetingLinkOrchestrator",
    "LinkState",
    "create_provider_registry",
]
