"""Chat module for CHZZK session connections."""

from .api import ChzzkOpenApiClient
from .session import ChatSession, ChatMessage, ConnectionState, UNKNOWN_AUTHOR

__all__ = [
    'ChzzkOpenApiClient',
    'ChatSession',
    'ChatMessage',
    'ConnectionState',
    'UNKNOWN_AUTHOR'
]
