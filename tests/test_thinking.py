"""Unit tests for reasoning section parsing."""
from hypothesis import given
from hypothesis import strategies as st

from loomchat.conversation import split_thinking


class TestSplitThinking:
    """Tests for split_thinking."""

    def test_plain_content(self):
        """Test content without a reasoning block."""
        split = split_thinking("Just an answer.")

        assert split.thinking is None
        assert split.body == "Just an answer."
        assert not split.is_open

    def test_closed_block(self):
        """Test a completed reasoning block ahead of the answer."""
        split = split_thinking("<think>\nLet me see.\n</think>\nThe answer is 4.")

        assert split.thinking == "\nLet me see.\n"
        assert split.body == "The answer is 4."
        assert not split.is_open

    def test_open_block_while_streaming(self):
        """Test a reasoning block that has not been closed yet."""
        split = split_thinking("<think>\nStill working")

        assert split.thinking == "\nStill working"
        assert split.body == ""
        assert split.is_open

    @given(st.text(alphabet=st.characters(blacklist_characters="<>")))
    def test_text_without_tags_is_body(self, content: str):
        """Property test: untagged content passes through unchanged."""
        split = split_thinking(content)

        assert split.thinking is None
        assert split.body == content
