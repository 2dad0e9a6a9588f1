"""
Document store models.

This module defines the owner and command-table records read from the
shared document store.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Dict, Any, Mapping

OWNER_ENABLED_FIELD = 'botEnabled'
OWNER_REFRESH_TOKEN_FIELD = 'chzzkRefreshToken'
COMMANDS_FIELD = 'commands'


@dataclass
class Owner:
    """Represents a channel owner record."""
    owner_id: str
    enabled: bool = False
    refresh_credential: Optional[str] = None

    @classmethod
    def from_document(cls, owner_id: str, data: Optional[Mapping[str, Any]]) -> 'Owner':
        """Create Owner instance from a store document."""
        data = data or {}
        refresh_credential = data.get(OWNER_REFRESH_TOKEN_FIELD)
        return cls(
            owner_id=owner_id,
            enabled=data.get(OWNER_ENABLED_FIELD) is True,
            refresh_credential=refresh_credential if isinstance(refresh_credential, str) else None
        )

    @property
    def can_start(self) -> bool:
        return self.enabled and bool(self.refresh_credential)


@dataclass
class CommandTable:
    """
    Exact-match mapping from trigger text to reply text.

    Replaced wholesale on every refresh; never merged.
    """
    owner_id: str
    commands: Dict[str, str] = field(default_factory=dict)
    loaded_at: Optional[datetime] = None

    @classmethod
    def empty(cls, owner_id: str) -> 'CommandTable':
        return cls(owner_id=owner_id)

    def lookup(self, text: str) -> Optional[str]:
        """Return the reply for an exact trigger match, or None."""
        return self.commands.get(text)

    def __contains__(self, text: str) -> bool:
        return text in self.commands

    def __len__(self) -> int:
        return len(self.commands)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'owner_id': self.owner_id,
            'commands': dict(self.commands),
            'loaded_at': self.loaded_at.isoformat() if self.loaded_at else None
        }
