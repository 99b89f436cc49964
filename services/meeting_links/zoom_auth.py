"""
Zoom Server-to-Server OAuth token management.
"""
import asyncio
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import aiohttp

from shared.config import Settings, get_settings
from shared.errors import AuthenticationFailed
from shared.schemas import ZoomAccessToken
from .base import post_request

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ZoomTokenManager:
    """
    Caches a Zoom account-level bearer token and refreshes it on demand.

    A cached token is reused while it expires more than the safety margin in
    the future. Refreshes are single-flight: concurrent callers that find the
    cache stale wait on the same lock and reuse the token fetched by the
    first one.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        session: Optional[aiohttp.ClientSession] = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.settings = settings or get_settings()
        self.session = session
        self._owns_session = session is None
        self._clock = clock
        self._token: Optional[ZoomAccessToken] = None
        self._lock = asyncio.Lock()
        self.refresh_count = 0

    @property
    def safety_margin(self) -> int:
        return self.settings.zoom_token_safety_margin_seconds

    @property
    def cached_token(self) -> Optional[ZoomAccessToken]:
        return self._token

    def _cached_if_valid(self) -> Optional[ZoomAccessToken]:
        if self._token and self._token.is_valid(self._clock(), self.safety_margin):
            return self._token
        return None

    async def get_access_token(self) -> ZoomAccessToken:
        """
        Return a valid access token, exchanging client credentials if needed.

        Raises:
            AuthenticationFailed: credentials missing or rejected, or a malformed token response
            NetworkError: the token endpoint could not be reached
        """
        token = self._cached_if_valid()
        if token:
            return token

        async with self._lock:
            token = self._cached_if_valid()
            if token:
                return token
            self._token = await self._request_token()
            return self._token

    def invalidate(self) -> None:
        """Forget the cached token, e.g. after the API rejected it."""
        if self._token:
            logger.info("Invalidating cached Zoom access token")
        self._token = None

    async def _request_token(self) -> ZoomAccessToken:
        if not self.settings.zoom_configured:
            raise AuthenticationFailed(
                "Zoom API credentials not configured. Please set ZOOM_ACCOUNT_ID, "
                "ZOOM_CLIENT_ID and ZOOM_CLIENT_SECRET"
            )

        if self.session is None:
            self.session = aiohttp.ClientSession()
            self._owns_session = True

        self.refresh_count += 1
        logger.info("Getting Zoom access token using Server-to-Server OAuth")

        auth = aiohttp.BasicAuth(self.settings.zoom_client_id, self.settings.zoom_client_secret)
        data = {
            "grant_type": "account_credentials",
            "account_id": self.settings.zoom_account_id,
        }
        status, body = await post_request(
            self.session,
            self.settings.zoom_token_url,
            data=data,
            auth=auth,
            timeout_seconds=self.settings.http_timeout_seconds,
            max_retries=0,
        )

        if status != 200:
            logger.error(f"Failed to get Server-to-Server token ({status}): {body[:200]}")
            raise AuthenticationFailed(f"Zoom authentication failed (HTTP {status})")

        try:
            token_data = json.loads(body)
            access_token = token_data["access_token"]
            expires_in = int(token_data["expires_in"])
        except (ValueError, TypeError, KeyError) as e:
            logger.error(f"Malformed Zoom token response: {e!r}")
            raise AuthenticationFailed("Zoom authentication failed (malformed token response)") from e

        if not isinstance(access_token, str) or not access_token:
            raise AuthenticationFailed("Zoom authentication failed (empty access token)")

        expires_at = self._clock() + timedelta(seconds=expires_in)
        logger.info(f"Obtained Zoom access token valid until {expires_at.isoformat()}")
        return ZoomAccessToken(access_token=access_token, expires_at=expires_at)

    async def cleanup(self) -> None:
        if self.session is not None and self._owns_session:
            await self.session.close()
            self.session = None
