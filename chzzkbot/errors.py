"""
Error taxonomy for the chatbot.

Collaborator-specific exceptions (aiohttp, python-socketio, Google client
libraries) are translated into these classes at the module that talks to
the collaborator.
"""

from typing import Optional


class ChzzkBotError(Exception):
    """Base exception for chatbot errors."""

    def __init__(self, message: str, owner_id: Optional[str] = None):
        super().__init__(message)
        self.owner_id = owner_id


class AuthFailure(ChzzkBotError):
    """Raised when a refresh credential is rejected or yields no access token."""
    pass


class ConnectFailure(ChzzkBotError):
    """Raised when the chat transport rejects or cannot establish a connection."""
    pass


class StoreReadFailure(ChzzkBotError):
    """Raised when the document store is unreachable or a record is malformed."""
    pass


class SendFailure(ChzzkBotError):
    """Raised when an outbound chat message is rejected."""
    pass
