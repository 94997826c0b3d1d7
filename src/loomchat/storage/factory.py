"""Construction of chat stores by name."""

from typing import Any

from .base import ChatStore


def create_chat_store(backend: str = "sqlite", **kwargs: Any) -> ChatStore:
    """Open the chat store named by `backend`, not yet connected.

    Args:
        backend: "memory" for a session-only store, "sqlite" for a database file
        **kwargs: Passed to the store, e.g. `path` for sqlite

    Raises:
        ValueError: For a store kind loomchat does not ship
    """
    if backend == "memory":
        from .in_memory import InMemoryChatStore
        return InMemoryChatStore(**kwargs)
    if backend == "sqlite":
        from .sqlite import SQLiteChatStore
        return SQLiteChatStore(**kwargs)

    raise ValueError(
        f"Unsupported storage backend {backend!r}: chats can be kept in 'memory' or 'sqlite'"
    )
