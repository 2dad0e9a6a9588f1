"""Authentication module for OAuth credential refresh."""

from .oauth import ChzzkOAuthClient
from .refresher import Credential, CredentialRefresher

__all__ = [
    'ChzzkOAuthClient',
    'Credential',
    'CredentialRefresher'
]
