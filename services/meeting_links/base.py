"""
Base meeting-link provider interface and the HTTP plumbing shared by the
conferencing clients.
"""
import asyncio
import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import aiohttp

from shared.errors import NetworkError, ProviderApiError
from shared.schemas import MeetingLinkResult, MeetingPlatform

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (aiohttp.ClientConnectionError, asyncio.TimeoutError)


async def post_request(
    session: aiohttp.ClientSession,
    url: str,
    *,
    timeout_seconds: float,
    max_retries: int = 0,
    **kwargs: Any,
) -> Tuple[int, str]:
    """
    POST and return ``(status, body_text)``.

    Transient transport failures are retried up to ``max_retries`` times;
    HTTP error statuses are returned to the caller untouched.

    Raises:
        NetworkError: if every attempt failed at the transport level
    """
    timeout = aiohttp.ClientTimeout(total=timeout_seconds)
    attempts = max_retries + 1
    last_error: Optional[BaseException] = None

    for attempt in range(1, attempts + 1):
        try:
            async with session.post(url, timeout=timeout, **kwargs) as response:
                body = await response.text()
                return response.status, body
        except TRANSIENT_ERRORS as e:
            last_error = e
            if attempt < attempts:
                logger.warning(f"Transient error calling {url} (attempt {attempt}/{attempts}): {e!r}")
                continue
        except aiohttp.ClientError as e:
            last_error = e
            break

    raise NetworkError(f"Could not reach {url}: {last_error!r}")


def parse_json_body(body: str, provider: str, status: int) -> Dict[str, Any]:
    """Decode a provider response body into a JSON object."""
    try:
        data = json.loads(body) if body else None
    except ValueError as e:
        raise ProviderApiError(
            f"{provider} returned a response that is not valid JSON", status, provider
        ) from e
    if not isinstance(data, dict):
        raise ProviderApiError(f"{provider} returned an unexpected response body", status, provider)
    return data


def error_message_from_body(body: str) -> str:
    """Best-effort extraction of a provider error message."""
    try:
        data = json.loads(body)
    except ValueError:
        return body[:200] if body else "no response body"
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return data.get("error_description") or error
        if data.get("message"):
            return str(data["message"])
    return body[:200]


def format_utc(value: datetime, with_millis: bool = False) -> str:
    """ISO-8601 UTC timestamp with a ``Z`` suffix."""
    utc_value = value.astimezone(timezone.utc)
    if with_millis:
        return utc_value.strftime("%Y-%m-%dT%H:%M:%S.000Z")
    return utc_value.strftime("%Y-%m-%dT%H:%M:%SZ")


class MeetingLinkProvider(ABC):
    """Base class for conferencing providers that mint meeting links."""

    platform: MeetingPlatform

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        timeout_seconds: float = 15.0,
        max_retries: int = 1,
    ):
        """
        Initialize the provider.

        Args:
            session: Shared HTTP session; a private one is created lazily when omitted
            timeout_seconds: Total timeout applied to every request
            max_retries: Retries on transient transport failures
        """
        self.session = session
        self._owns_session = session is None
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries

    @property
    def name(self) -> str:
        return self.platform.value

    def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None:
            self.session = aiohttp.ClientSession()
            self._owns_session = True
        return self.session

    @abstractmethod
    async def create_meeting(
        self,
        title: str,
        start_time: datetime,
        duration_minutes: int,
        participant_emails: List[str],
        timezone: Optional[str] = None,
    ) -> MeetingLinkResult:
        """
        Create a meeting on the provider.

        Args:
            title: Meeting title
            start_time: Aware start instant
            duration_minutes: Duration in minutes
            participant_emails: Invitee email addresses
            timezone: IANA timezone reported to the provider

        Returns:
            Normalized meeting descriptor

        Raises:
            ProviderApiError: on a non-success response or undecodable body
            NetworkError: on transport failure
        """
        pass

    async def _post_json(
        self,
        url: str,
        payload: Dict[str, Any],
        headers: Dict[str, str],
        expected_status: int,
    ) -> Dict[str, Any]:
        """POST a JSON payload and decode the expected success response."""
        status, body = await post_request(
            self._get_session(),
            url,
            json=payload,
            headers=headers,
            timeout_seconds=self.timeout_seconds,
            max_retries=self.max_retries,
        )
        if status != expected_status:
            message = error_message_from_body(body)
            logger.error(f"{self.name} API error ({status}): {message}")
            raise ProviderApiError(
                f"{self.name} API returned error {status}: {message}", status, self.name
            )
        return parse_json_body(body, self.name, status)

    async def cleanup(self) -> None:
        """Close the HTTP session if this provider created it."""
        if self.session is not None and self._owns_session:
            await self.session.close()
            self.session = None
