"""Abstract base class for chat storage backends.

This module defines the interface for thread and message storage.
The abstraction hides:
- Storage format (SQLite, in-memory)
- Id assignment and timestamping
- Connection management
"""

from abc import ABC, abstractmethod
from typing import Any

from .models import Message, Role, Thread


class ChatStore(ABC):
    """Abstract chat storage backend.

    Each thread owns an append-only, totally ordered message log. Ids are
    unique and increase with insertion order; `created_at` never decreases
    in storage order.
    """

    @abstractmethod
    async def connect(self) -> None:
        """Initialize the storage backend."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the storage backend gracefully."""

    @abstractmethod
    async def create_thread(self, title: str, system_prompt: str | None = None) -> Thread:
        """Create a new thread."""

    @abstractmethod
    async def get_thread(self, thread_id: int) -> Thread:
        """Fetch a thread.

        Raises:
            ThreadNotFoundError: If the thread does not exist
        """

    @abstractmethod
    async def list_threads(self, include_archived: bool = False) -> list[Thread]:
        """List threads, newest first."""

    @abstractmethod
    async def rename_thread(self, thread_id: int, title: str) -> None:
        """Change a thread's title."""

    @abstractmethod
    async def archive_thread(self, thread_id: int) -> None:
        """Hide a thread from the default listing."""

    @abstractmethod
    async def delete_thread(self, thread_id: int) -> None:
        """Delete a thread and all of its messages."""

    @abstractmethod
    async def add_message(
        self,
        thread_id: int,
        role: Role | str,
        content: str,
        images: list[str] | None = None,
        model: str | None = None,
        reply_to_id: int | None = None,
        metrics: dict[str, Any] | None = None,
    ) -> Message:
        """Append a message to a thread's log.

        Args:
            thread_id: Thread to append to
            role: Author of the message
            content: Message text
            images: Base64-encoded image attachments
            model: Generator id, for assistant messages
            reply_to_id: Message this one explicitly replies to
            metrics: Generation metrics keyed by field name (see METRIC_FIELDS)

        Raises:
            ThreadNotFoundError: If the thread does not exist
        """

    @abstractmethod
    async def list_messages(self, thread_id: int) -> list[Message]:
        """Get a thread's messages in storage order."""

    @abstractmethod
    async def update_message(self, thread_id: int, message_id: int, content: str) -> None:
        """Replace a message's content.

        Raises:
            MessageNotFoundError: If the message is not in the thread
        """

    @abstractmethod
    async def delete_messages_from(self, thread_id: int, message_id: int) -> int:
        """Delete a message and every later message. Returns the count deleted."""

    @abstractmethod
    async def delete_messages_after(self, thread_id: int, message_id: int) -> int:
        """Delete every message later than the given one. Returns the count deleted."""

    @abstractmethod
    async def delete_last_message(self, thread_id: int) -> Message | None:
        """Delete the most recent message of a thread, returning it."""

    @property
    @abstractmethod
    def backend_type(self) -> str:
        """Get the backend type identifier."""

    async def __aenter__(self) -> "ChatStore":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.disconnect()
