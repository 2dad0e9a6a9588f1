"""
Credential refresh for chat owners.

Turns an owner's long-lived refresh credential into a short-lived access
credential. Nothing here is persisted; a credential is recomputed on every
(re)connect.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional, Any

from .oauth import ChzzkOAuthClient
from ..errors import AuthFailure

logger = logging.getLogger(__name__)


@dataclass
class Credential:
    """Access credential derived from a refresh credential."""
    access_token: str
    expires_in: Optional[int] = None
    refresh_token: Optional[str] = None
    token_type: str = "Bearer"
    scope: Optional[str] = None
    issued_at: datetime = field(default_factory=datetime.now)

    @property
    def expires_at(self) -> Optional[datetime]:
        if self.expires_in is None:
            return None
        return self.issued_at + timedelta(seconds=self.expires_in)

    def is_expired(self, buffer_seconds: int = 300) -> bool:
        """
        Check if the credential is expired.

        Args:
            buffer_seconds: Safety margin before the real expiry

        Returns:
            bool: True if expired or about to expire, False otherwise
        """
        if self.expires_at is None:
            return False
        return datetime.now() >= self.expires_at - timedelta(seconds=buffer_seconds)


def _parse_expires_in(value: Any) -> Optional[int]:
    # CHZZK sends expiresIn as a string
    if value is None or value == '':
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring unparseable expiresIn value: {value!r}")
        return None


class CredentialRefresher:
    """Exchanges refresh credentials for access credentials on demand."""

    def __init__(self, oauth_client: ChzzkOAuthClient):
        self.oauth_client = oauth_client

    async def refresh(self, refresh_credential: str, owner_id: Optional[str] = None) -> Credential:
        """
        Exchange a refresh credential for an access credential.

        Args:
            refresh_credential: Refresh token from the owner record
            owner_id: Owner the credential belongs to (for logging)

        Returns:
            Credential: Fresh access credential

        Raises:
            AuthFailure: If the credential is empty, rejected, or the response
                carries no access token
        """
        if not refresh_credential:
            raise AuthFailure("Refresh credential is empty", owner_id=owner_id)

        logger.info("Requesting access token with refresh token", extra={'owner_id': owner_id})

        try:
            token_data = await self.oauth_client.refresh_token(refresh_credential)
        except AuthFailure as e:
            e.owner_id = owner_id
            raise

        access_token = token_data.get('accessToken') if isinstance(token_data, dict) else None
        if not access_token or not isinstance(access_token, str):
            raise AuthFailure("Token response did not contain an access token", owner_id=owner_id)

        credential = Credential(
            access_token=access_token,
            expires_in=_parse_expires_in(token_data.get('expiresIn')),
            refresh_token=token_data.get('refreshToken') or None,
            token_type=token_data.get('tokenType') or "Bearer",
            scope=token_data.get('scope')
        )

        logger.info(
            "Access token issued",
            extra={'owner_id': owner_id, 'expires_in': credential.expires_in}
        )
        return credential
