"""Message tree builder.

Turns a flat, chronologically ordered message log (plus an optional
in-flight response) into a forest of reply threads. Building never fails:
malformed or dangling reply links degrade to roots.
"""

import logging
from collections.abc import Sequence
from datetime import datetime, timezone

from ..config import STREAMING_NODE_ID
from ..storage.models import Message, Role
from .models import MessageForest, MessageNode, StreamingSnapshot

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

logger = logging.getLogger(__name__)


def infer_reply_links(messages: Sequence[Message]) -> list[int | None]:
    """Working reply link for every message, in input order.

    An assistant message without a stored link that directly follows a
    user message is taken to answer that message. Stored links are kept
    verbatim. Persisted messages are not modified.
    """
    links: list[int | None] = []
    for index, message in enumerate(messages):
        link = message.reply_to_id
        if link is None and message.role == Role.ASSISTANT and index > 0:
            previous = messages[index - 1]
            if previous.role == Role.USER:
                link = previous.id
        links.append(link)
    return links


def _closes_cycle(node_id: int, parent_id: int, parent_of: dict[int, int]) -> bool:
    """True if `node_id` is already an ancestor of (or equal to) `parent_id`."""
    current: int | None = parent_id
    while current is not None:
        if current == node_id:
            return True
        current = parent_of.get(current)
    return False


def _streaming_node(messages: Sequence[Message], content: str) -> MessageNode:
    last = messages[-1] if messages else None
    placeholder = Message(
        id=STREAMING_NODE_ID,
        thread_id=last.thread_id if last else STREAMING_NODE_ID,
        role=Role.ASSISTANT,
        content=content,
        # Fixed timestamp so identical inputs build identical forests
        created_at=last.created_at if last else _EPOCH,
    )
    return MessageNode(message=placeholder)


def build_message_tree(
    messages: Sequence[Message],
    streaming: StreamingSnapshot | None = None,
    infer_links: bool = True,
) -> MessageForest:
    """Build the reply forest for a thread.

    Args:
        messages: The thread's messages in storage (chronological) order
        streaming: In-flight response; grafted as an ephemeral node when active
        infer_links: Apply the adjacency heuristic for unlinked assistant replies

    Returns:
        Forest containing every input message exactly once, plus at most one
        streaming node
    """
    if infer_links:
        links = infer_reply_links(messages)
    else:
        links = [m.reply_to_id for m in messages]

    forest = MessageForest()
    nodes = {m.id: MessageNode(message=m) for m in messages}
    parent_of: dict[int, int] = {}

    for message, link in zip(messages, links):
        node = nodes[message.id]
        if link is not None and link in nodes and not _closes_cycle(message.id, link, parent_of):
            parent_of[message.id] = link
            node.parent_id = link
            nodes[link].children.append(message.id)
        else:
            if link is not None:
                logger.debug("Promoting message %s to root (reply link %s unusable)", message.id, link)
            forest.roots.append(message.id)
        forest.nodes[message.id] = node

    if streaming is not None and streaming.active:
        ghost = _streaming_node(messages, streaming.content)
        last = messages[-1] if messages else None
        if last is not None and last.reply_to_id is not None and last.id in forest:
            forest.add_child(last.id, ghost)
        else:
            forest.add_root(ghost)

    return forest
