"""Message processing module for command routing."""

from .router import CommandRouter, PrefixCommand, PICK_COMMAND, DEFAULT_PREFIX_COMMANDS

__all__ = [
    'CommandRouter',
    'PrefixCommand',
    'PICK_COMMAND',
    'DEFAULT_PREFIX_COMMANDS'
]
