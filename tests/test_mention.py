# FILE: tests/test_mention.py
"""
Tests for app/bot/mention.py
Bot @mention detection and removal for group chats.
"""

from app.bot.mention import Mentionee, is_bot_mentioned, remove_bot_mentions

BOT = Mentionee(index=0, length=8, is_self=True)


class TestIsBotMentioned:
    """Test self-mention detection."""

    def test_self_mention(self):
        """Test a self mention is detected."""
        assert is_bot_mentioned([BOT])

    def test_other_users_only(self):
        """Test mentions of other users do not count."""
        assert not is_bot_mentioned([Mentionee(index=0, length=3)])
        assert not is_bot_mentioned([])

    def test_all_mention_ignored(self):
        """Test an @All mention is not a bot mention."""
        assert not is_bot_mentioned([Mentionee(index=0, length=4, is_self=True, type="all")])


class TestRemoveBotMentions:
    """Test mention span removal."""

    def test_leading_mention(self):
        """Test the leading mention is cut and whitespace collapsed."""
        assert remove_bot_mentions("@NTPU小工具 我想找微積分的課", [BOT]) == "我想找微積分的課"

    def test_middle_mention_keeps_others(self):
        """Test only the bot span is removed when several users are mentioned."""
        text = "@小明 問一下 @NTPU小工具 微積分"
        mentionees = [Mentionee(index=0, length=3), Mentionee(index=8, length=8, is_self=True)]
        assert remove_bot_mentions(text, mentionees) == "@小明 問一下 微積分"

    def test_repeated_mentions(self):
        """Test every self mention is removed back to front."""
        text = "@NTPU小工具 課程 @NTPU小工具"
        mentionees = [BOT, Mentionee(index=12, length=8, is_self=True)]
        assert remove_bot_mentions(text, mentionees) == "課程"

    def test_out_of_range_span_clamped(self):
        """Test a span running past the end is clamped."""
        assert remove_bot_mentions("hi @NTPU", [Mentionee(index=3, length=50, is_self=True)]) == "hi"
        assert remove_bot_mentions("hi", [Mentionee(index=9, length=2, is_self=True)]) == "hi"

    def test_no_self_mention_unchanged(self):
        """Test text is returned untouched without a self mention."""
        assert remove_bot_mentions("  @小明  hi ", [Mentionee(index=2, length=3)]) == "  @小明  hi "
