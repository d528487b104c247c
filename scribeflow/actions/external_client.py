"""HTTP client for custom actions.

A custom action POSTs ``{"text": <transcription>}`` as JSON to a configured
http(s) URL. Any 2xx status counts as success and the response body is shown
to the user.
"""

import asyncio
import logging
from typing import Tuple

import aiohttp

from ..models.errors import ExternalActionError, ExternalActionErrorKind

logger = logging.getLogger(__name__)

ALLOWED_SCHEMES = ("http://", "https://")


def validate_url(url: str) -> str:
    """Return the stripped URL, or raise ExternalActionError if it is not http(s)."""
    stripped = (url or "").strip()
    if not stripped.lower().startswith(ALLOWED_SCHEMES):
        raise ExternalActionError(ExternalActionErrorKind.INVALID_URL,
                                  f"Invalid URL '{url}'. URL must start with http:// or https://")
    return stripped


class ExternalActionClient:
    """Sends transcriptions to custom action endpoints."""

    def __init__(self, timeout_seconds: float = 30.0):
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    async def send(self, url: str, text: str) -> str:
        """POST ``text`` to ``url``.

        Returns:
            The response body, or "OK" when it is empty

        Raises:
            ExternalActionError: Invalid URL, connection failure or non-2xx status
        """
        target = validate_url(url)
        try:
            status, body = await self._post(target, {"text": text})
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Custom action request to {target} failed: {e}")
            raise ExternalActionError(
                ExternalActionErrorKind.NETWORK_ERROR,
                "Failed to connect to external service. Please check your internet connection.") from e

        if 200 <= status < 300:
            logger.info(f"Custom action {target} answered {status}")
            return body.strip() or "OK"

        logger.warning(f"Custom action {target} answered {status}")
        raise ExternalActionError(ExternalActionErrorKind.SERVICE_ERROR,
                                  f"External service returned an error: {body.strip() or f'HTTP {status}'}")

    async def _post(self, url: str, data: dict) -> Tuple[int, str]:
        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            async with session.post(url, json=data) as response:
                return response.status, await response.text()
