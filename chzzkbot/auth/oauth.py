"""
OAuth handling for CHZZK authentication.

This module exchanges refresh tokens for fresh access tokens against
the CHZZK Open API token endpoint.
"""

import asyncio
import aiohttp
import logging
from typing import Optional, Dict, Any

from ..config.settings import DEFAULT_API_URL
from ..errors import AuthFailure

logger = logging.getLogger(__name__)


def unwrap_content(payload: Any) -> Dict[str, Any]:
    """
    Return the body of a CHZZK API response.

    Open API responses are wrapped as ``{"code", "message", "content"}``;
    flat bodies are returned as they are.
    """
    if not isinstance(payload, dict):
        return {}
    content = payload.get('content')
    if isinstance(content, dict):
        return content
    return payload


class ChzzkOAuthClient:
    """Handles CHZZK OAuth token refresh."""

    def __init__(self, client_id: str, client_secret: str, base_url: str = DEFAULT_API_URL,
                 timeout: float = 30.0):
        """
        Initialize ChzzkOAuthClient.

        Args:
            client_id: CHZZK application client ID
            client_secret: CHZZK application client secret
            base_url: Open API base URL
            timeout: Total timeout for each request (seconds)
        """
        self.client_id = client_id
        self.client_secret = client_secret
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

    async def refresh_token(self, refresh_token: str) -> Dict[str, Any]:
        """
        Refresh an access token using a refresh token.

        Args:
            refresh_token: Refresh token

        Returns:
            Dict: Token data (``accessToken``, ``refreshToken``, ``expiresIn``, ...)

        Raises:
            AuthFailure: If the endpoint rejects the token or cannot be reached
        """
        payload = {
            'grantType': 'refresh_token',
            'refreshToken': refresh_token,
            'clientId': self.client_id,
            'clientSecret': self.client_secret
        }

        try:
            session = await self._get_session()

            async with session.post(f"{self.base_url}/auth/v1/token", json=payload) as response:
                if response.status == 200:
                    token_data = unwrap_content(await response.json(content_type=None))
                    logger.debug("Token refresh response received")
                    return token_data

                error_text = await response.text()
                logger.error(f"Token refresh failed with status {response.status}: {error_text}")
                raise AuthFailure(f"Token endpoint returned status {response.status}")

        except asyncio.TimeoutError:
            raise AuthFailure(f"Token refresh timed out after {self.timeout}s")
        except aiohttp.ClientError as e:
            raise AuthFailure(f"Token refresh client error: {e}")
        except ValueError as e:
            # Body was not JSON
            raise AuthFailure(f"Token refresh returned a malformed body: {e}")
