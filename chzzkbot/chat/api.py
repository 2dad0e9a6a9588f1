"""
CHZZK Open API client for chat sessions.

This module covers the REST side of a chat session: obtaining the
session server URL, subscribing to chat events, and sending messages.
"""

import asyncio
import aiohttp
import logging
from typing import Optional, Dict, Any, Type

from ..auth.oauth import unwrap_content
from ..config.settings import DEFAULT_API_URL
from ..errors import ChzzkBotError, ConnectFailure, SendFailure

logger = logging.getLogger(__name__)


class ChzzkOpenApiClient:
    """Authenticated calls against the CHZZK Open API."""

    def __init__(self, base_url: str = DEFAULT_API_URL, timeout: float = 30.0):
        """
        Initialize ChzzkOpenApiClient.

        Args:
            base_url: Open API base URL
            timeout: Total timeout for each request (seconds)
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout

        # HTTP session for connection reuse
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if not self._session or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self._session

    async def close(self):
        """Close HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def _make_request(self, method: str, endpoint: str, access_token: str,
                            error_class: Type[ChzzkBotError],
                            params: Optional[Dict[str, str]] = None,
                            data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Make an authenticated request and unwrap the response body.

        Raises:
            error_class: On non-200 status, timeout, or client error
        """
        session = await self._get_session()
        url = f"{self.base_url}{endpoint}"
        headers = {'Authorization': f'Bearer {access_token}'}

        try:
            async with session.request(method, url, headers=headers, params=params, json=data) as response:
                if response.status == 200:
                    return unwrap_content(await response.json(content_type=None))

                error_text = await response.text()
                raise error_class(f"{endpoint} failed with status {response.status}: {error_text}")

        except asyncio.TimeoutError:
            raise error_class(f"Request to {endpoint} timed out after {self.timeout}s")
        except aiohttp.ClientError as e:
            raise error_class(f"Client error on {endpoint}: {e}")
        except ValueError as e:
            raise error_class(f"Malformed response from {endpoint}: {e}")

    async def get_session_url(self, access_token: str) -> str:
        """
        Get the session server URL for a user token.

        Raises:
            ConnectFailure: If the token is rejected or no URL is returned
        """
        content = await self._make_request('GET', '/open/v1/sessions/auth', access_token, ConnectFailure)
        url = content.get('url')
        if not url or not isinstance(url, str):
            raise ConnectFailure("Session auth response did not contain a URL")
        return url

    async def subscribe_chat(self, access_token: str, session_key: str) -> None:
        """
        Subscribe a session to the owner's chat events.

        Raises:
            ConnectFailure: If the subscription is rejected
        """
        await self._make_request(
            'POST', '/open/v1/sessions/events/subscribe/chat', access_token, ConnectFailure,
            params={'sessionKey': session_key}
        )
        logger.debug("Chat subscription requested")

    async def send_chat(self, access_token: str, message: str) -> Optional[str]:
        """
        Send a chat message to the owner's channel.

        Returns:
            The message id reported by the platform, if any

        Raises:
            SendFailure: If the message is rejected
        """
        content = await self._make_request(
            'POST', '/open/v1/chats/send', access_token, SendFailure,
            data={'message': message}
        )
        return content.get('messageId')
