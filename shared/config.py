"""
Configuration management for the Timely scheduling services.
"""
from typing import Optional, List

from pydantic import Field
from pydantic_settings import BaseSettings
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent
class Settings(BaseSettings):
    """Application settings."""

    # Application
    app_name: str = "Timely"
    app_version: str = "1.0.0"
    debug: bool = False

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_prefix: str = "/api/v1"
    allowed_cors_origins: str = "http://localhost:3000"
    cors_allow_credentials: bool = True

    # MongoDB Configuration
    mongodb_url: str = "mongodb://localhost:27017"
    mongodb_database: str = "timely"
    mongodb_collection_prefix: str = "timely_"
    users_collection: str = "users"
    meeting_types_collection: str = "meeting_types"
    meetings_collection: str = "meetings"
    mongodb_timeout_ms: int = 15000

    # Identity service (email/password + federated sign-in)
    identity_api_key: Optional[str] = None
    identity_base_url: str = "https://identitytoolkit.googleapis.com/v1"
    federated_redirect_uri: str = "http://localhost"
    apple_provider_id: str = "apple.com"

    # Zoom (Server-to-Server OAuth)
    zoom_account_id: Optional[str] = None
    zoom_client_id: Optional[str] = None
    zoom_client_secret: Optional[str] = None
    zoom_token_url: str = "https://zoom.us/oauth/token"
    zoom_api_base_url: str = "https://api.zoom.us/v2"
    zoom_token_safety_margin_seconds: int = 300

    # Google Calendar / Meet
    google_access_token: Optional[str] = None
    google_refresh_token: Optional[str] = None
    google_client_id: Optional[str] = None
    google_client_secret: Optional[str] = None
    google_token_uri: str = "https://oauth2.googleapis.com/token"
    google_calendar_base_url: str = "https://www.googleapis.com/calendar/v3"

    # Microsoft Teams (Graph, application permissions)
    ms_client_id: Optional[str] = None
    ms_client_secret: Optional[str] = None
    ms_tenant_id: Optional[str] = "common"
    ms_organizer_user_id: Optional[str] = None
    graph_base_url: str = "https://graph.microsoft.com/v1.0"

    # Provider HTTP behaviour
    http_timeout_seconds: float = 15.0
    http_max_retries: int = Field(1, ge=0, le=3)

    # Sandbox mode: placeholder links, no provider calls
    meeting_links_sandbox: bool = False

    # Scheduling defaults
    default_timezone: str = "UTC"
    default_meeting_type_label: str = "General Meeting"

    # Email invitations
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    invitation_from_email: Optional[str] = None
    organizer_name: str = "Timely"

    # Logging
    log_level: str = "INFO"
    log_format: str = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

    def get_cors_origins(self) -> List[str]:
        """Parse allowed_cors_origins string into a list."""
        if not self.allowed_cors_origins:
            return []
        return [origin.strip() for origin in self.allowed_cors_origins.split(",") if origin.strip()]

    def collection_name(self, name: str) -> str:
        """Prefixed MongoDB collection name."""
        return f"{self.mongodb_collection_prefix}{name}"

    @property
    def zoom_configured(self) -> bool:
        return bool(self.zoom_account_id and self.zoom_client_id and self.zoom_client_secret)

    @property
    def teams_configured(self) -> bool:
        return bool(self.ms_client_id and self.ms_client_secret and self.ms_organizer_user_id)

    @property
    def smtp_configured(self) -> bool:
        return all([self.smtp_host, self.smtp_port, self.smtp_username, self.smtp_password])

    class Config:
        env_file = BASE_DIR / ".env"
        case_sensitive = False
        extra = "ignore"


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get application settings."""
    return settings
