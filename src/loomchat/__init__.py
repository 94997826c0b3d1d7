"""
Loomchat: threaded conversations with a local language model.

Conversations are stored as flat message logs and rebuilt into reply
forests; new conversations can be seeded with context drawn from others.
"""

__version__ = "0.1.0"

from .conversation import (
    ContextPolicy,
    MessageForest,
    MessageNode,
    StreamReconciler,
    assemble_context,
    build_message_tree,
)
from .storage import ChatStore, Message, Thread, create_chat_store

__all__ = [
    "ChatStore",
    "ContextPolicy",
    "Message",
    "MessageForest",
    "MessageNode",
    "StreamReconciler",
    "Thread",
    "assemble_context",
    "build_message_tree",
    "create_chat_store",
]
