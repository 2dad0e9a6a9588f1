"""
Unit tests for CommandRouter.

Tests exact-match lookup, the built-in pick command, and routing order.
"""

from unittest.mock import Mock

from chzzkbot.chat.session import UNKNOWN_AUTHOR
from chzzkbot.processing.router import CommandRouter, PrefixCommand, PICK_COMMAND
from chzzkbot.store.models import CommandTable
from tests.conftest import create_test_message


def make_table(commands=None, owner_id="owner-a") -> CommandTable:
    return CommandTable(owner_id=owner_id, commands=dict(commands or {}))


class TestExactMatch:
    """Test cases for exact-match commands."""

    def setup_method(self):
        self.router = CommandRouter()

    def test_trimmed_exact_match(self):
        """Surrounding whitespace is ignored before lookup."""
        table = make_table({"!hi": "hello"})

        reply = self.router.route(create_test_message(" !hi "), table)

        assert reply == "hello"

    def test_exact_match_is_case_sensitive(self):
        table = make_table({"!hi": "hello"})

        assert self.router.route(create_test_message("!HI"), table) is None

    def test_no_match_returns_none(self):
        table = make_table({"!hi": "hello"})

        assert self.router.route(create_test_message("hello there"), table) is None

    def test_empty_message_returns_none(self):
        table = make_table({"": "should never be sent"})

        assert self.router.route(create_test_message("   "), table) is None
        assert self.router.route(create_test_message(""), table) is None

    def test_empty_reply_is_not_a_match(self):
        table = make_table({"!x": ""})

        assert self.router.route(create_test_message("!x"), table) is None

    def test_empty_reply_falls_through_to_prefix_command(self):
        table = make_table({"!픽 제트": ""})

        reply = self.router.route(create_test_message("!픽 제트", nickname="A"), table)

        assert reply == "A님, 오늘 픽은 제트 추천!"

    def test_exact_match_wins_over_prefix_command(self):
        """A table entry shadows the built-in pick command for the same text."""
        table = make_table({"!픽 제트": "custom reply"})

        reply = self.router.route(create_test_message("!픽 제트", nickname="A"), table)

        assert reply == "custom reply"

    def test_prefix_commands_not_evaluated_on_exact_match(self):
        prefix_command = Mock(spec=PrefixCommand)
        prefix_command.prefix = "!hi"
        prefix_command.matches.return_value = True
        router = CommandRouter(prefix_commands=[prefix_command])

        reply = router.route(create_test_message("!hi"), make_table({"!hi": "hello"}))

        assert reply == "hello"
        prefix_command.matches.assert_not_called()
        prefix_command.render.assert_not_called()


class TestPickCommand:
    """Test cases for the built-in pick command."""

    def setup_method(self):
        self.router = CommandRouter()
        self.table = make_table()

    def test_pick_with_argument(self):
        reply = self.router.route(create_test_message("!픽 제트", nickname="A"), self.table)

        assert reply == "A님, 오늘 픽은 제트 추천!"

    def test_pick_uses_first_token_only(self):
        reply = self.router.route(create_test_message("!픽 제트 세이지", nickname="A"), self.table)

        assert reply == "A님, 오늘 픽은 제트 추천!"

    def test_bare_pick_uses_default_and_unknown_author(self):
        """A bare pick with no author name falls back on both."""
        reply = self.router.route(create_test_message("!픽 ", nickname=""), self.table)

        assert reply == f"{UNKNOWN_AUTHOR}님, 오늘 픽은 레이나 추천!"

    def test_pick_with_empty_argument_uses_default(self):
        # Second token is empty when two spaces follow the command word
        reply = self.router.route(create_test_message("!픽  제트", nickname="B"), self.table)

        assert reply == "B님, 오늘 픽은 레이나 추천!"

    def test_pick_without_separator_is_not_a_command(self):
        assert self.router.route(create_test_message("!픽제트"), self.table) is None

    def test_unknown_author_default(self):
        reply = self.router.route(create_test_message("!픽 오멘"), self.table)

        assert reply == "unknown님, 오늘 픽은 오멘 추천!"


class TestPrefixCommand:
    """Test cases for PrefixCommand."""

    def test_extract_argument(self):
        assert PICK_COMMAND.extract_argument("!픽 제트") == "제트"
        assert PICK_COMMAND.extract_argument("!픽") == "레이나"

    def test_custom_prefix_command(self):
        greet = PrefixCommand(prefix="!greet ", template="hi {argument}, from {nickname}", default_argument="all")
        router = CommandRouter(prefix_commands=[greet])

        assert router.route(create_test_message("!greet bob", nickname="amy"), make_table()) == "hi bob, from amy"
        assert router.route(create_test_message("!greet", nickname="amy"), make_table()) == "hi all, from amy"
        # Built-in commands are replaced, not extended
        assert router.route(create_test_message("!픽 제트"), make_table()) is None
