"""Separation of a message's reasoning section from its answer.

Reasoning models emit a `<think>...</think>` block ahead of the answer.
While a response is still streaming the block may be open.
"""

import re
from typing import NamedTuple

_CLOSED_BLOCK = re.compile(r"<think(?:[\s\S]*?)>([\s\S]*?)</think>")
_OPEN_TAG = re.compile(r"<think(?:[\s\S]*?)>")


class ThinkingSplit(NamedTuple):
    thinking: str | None
    body: str
    is_open: bool = False


def split_thinking(content: str) -> ThinkingSplit:
    """Split content into its reasoning section and its answer body."""
    if "<think" in content and "</think>" not in content:
        parts = _OPEN_TAG.split(content, maxsplit=1)
        if len(parts) > 1:
            return ThinkingSplit(thinking=parts[1], body=parts[0].strip(), is_open=True)

    match = _CLOSED_BLOCK.search(content)
    if match is None:
        return ThinkingSplit(thinking=None, body=content)

    body = (content[:match.start()] + content[match.end():]).strip()
    return ThinkingSplit(thinking=match.group(1), body=body)
