"""Storage layer for threads and messages.

Provides persistent, append-only message logs per thread.
"""

from .base import ChatStore
from .factory import create_chat_store
from .models import Message, Role, Thread

__all__ = [
    "ChatStore",
    "Message",
    "Role",
    "Thread",
    "create_chat_store",
]
