"""
Chat command routing.

This module decides which reply, if any, an inbound chat message gets:
exact matches from the owner's command table first, then the built-in
prefix commands that take an argument.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from ..chat.session import ChatMessage, UNKNOWN_AUTHOR
from ..store.models import CommandTable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PrefixCommand:
    """
    A command recognised by its prefix, with one argument token after it.

    ``template`` is formatted with ``nickname`` and ``argument``.
    """
    prefix: str
    template: str
    default_argument: str

    def matches(self, text: str) -> bool:
        return text.startswith(self.prefix)

    def extract_argument(self, text: str) -> str:
        """Return the first token after the command word, or the default."""
        tokens = text.split(' ')
        argument = tokens[1] if len(tokens) > 1 else ''
        return argument or self.default_argument

    def render(self, text: str, nickname: str) -> str:
        return self.template.format(nickname=nickname, argument=self.extract_argument(text))


# "!픽 <agent>": recommend a pick, defaulting to Reyna
PICK_COMMAND = PrefixCommand(
    prefix='!픽 ',
    template='{nickname}님, 오늘 픽은 {argument} 추천!',
    default_argument='레이나'
)

DEFAULT_PREFIX_COMMANDS = (PICK_COMMAND,)


class CommandRouter:
    """Maps inbound messages to replies using a command table snapshot."""

    def __init__(self, prefix_commands: Optional[Sequence[PrefixCommand]] = None):
        """
        Initialize CommandRouter.

        Args:
            prefix_commands: Prefix commands checked after exact matches
                (defaults to the built-in pick command)
        """
        if prefix_commands is None:
            prefix_commands = DEFAULT_PREFIX_COMMANDS
        self.prefix_commands: List[PrefixCommand] = list(prefix_commands)

    def route(self, message: ChatMessage, commands: CommandTable) -> Optional[str]:
        """
        Find the reply for a message.

        Args:
            message: Inbound chat message
            commands: Current command table snapshot

        Returns:
            Reply text, or None if nothing matched
        """
        text = (message.content or '').strip()
        if not text:
            return None

        # An empty reply counts as no match
        reply = commands.lookup(text)
        if reply:
            return reply

        # Stripping removed the trailing space of an argument-less prefix command
        padded = text + ' '
        nickname = message.nickname or UNKNOWN_AUTHOR
        for command in self.prefix_commands:
            if command.matches(text) or padded == command.prefix:
                logger.debug(f"Prefix command {command.prefix.strip()} matched", extra={'owner_id': message.owner_id})
                return command.render(text, nickname)

        return None
