"""In-memory chat storage backend.

Simple dict-based storage for session-only use.
Data is lost when the application exits.
"""

from itertools import count
from typing import Any

from ..errors import MessageNotFoundError, ThreadNotFoundError
from .base import ChatStore
from .models import Message, Role, Thread, clean_metrics, utc_now


class InMemoryChatStore(ChatStore):
    """In-memory chat storage (session-only).

    Suitable for single-session use or testing.
    """

    def __init__(self) -> None:
        self._threads: dict[int, Thread] = {}
        self._messages: dict[int, list[Message]] = {}
        self._thread_ids = count(1)
        self._message_ids = count(1)

    async def connect(self) -> None:
        """Initialize storage (no-op for in-memory)."""
        pass

    async def disconnect(self) -> None:
        """Close storage (no-op for in-memory)."""
        pass

    def _require_thread(self, thread_id: int) -> Thread:
        try:
            return self._threads[thread_id]
        except KeyError:
            raise ThreadNotFoundError(thread_id) from None

    async def create_thread(self, title: str, system_prompt: str | None = None) -> Thread:
        thread = Thread(id=next(self._thread_ids), title=title, system_prompt=system_prompt)
        self._threads[thread.id] = thread
        self._messages[thread.id] = []
        return thread

    async def get_thread(self, thread_id: int) -> Thread:
        return self._require_thread(thread_id)

    async def list_threads(self, include_archived: bool = False) -> list[Thread]:
        threads = [t for t in self._threads.values() if include_archived or not t.is_archived]
        return sorted(threads, key=lambda t: (t.created_at, t.id), reverse=True)

    async def rename_thread(self, thread_id: int, title: str) -> None:
        thread = self._require_thread(thread_id)
        self._threads[thread_id] = thread.model_copy(update={"title": title})

    async def archive_thread(self, thread_id: int) -> None:
        thread = self._require_thread(thread_id)
        self._threads[thread_id] = thread.model_copy(update={"is_archived": True})

    async def delete_thread(self, thread_id: int) -> None:
        self._messages.pop(thread_id, None)
        self._threads.pop(thread_id, None)

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
        self._require_thread(thread_id)
        log = self._messages[thread_id]

        # Keep created_at non-decreasing even if the clock steps backwards
        created_at = utc_now()
        if log and log[-1].created_at > created_at:
            created_at = log[-1].created_at

        message = Message(
            id=next(self._message_ids),
            thread_id=thread_id,
            role=role,
            content=content,
            images=images or None,
            model=model,
            reply_to_id=reply_to_id,
            created_at=created_at,
            **clean_metrics(metrics),
        )
        log.append(message)
        return message

    async def list_messages(self, thread_id: int) -> list[Message]:
        return list(self._messages.get(thread_id, []))

    async def update_message(self, thread_id: int, message_id: int, content: str) -> None:
        log = self._messages.get(thread_id, [])
        for i, message in enumerate(log):
            if message.id == message_id:
                log[i] = message.model_copy(update={"content": content})
                return
        raise MessageNotFoundError(thread_id, message_id)

    def _delete_where(self, thread_id: int, predicate) -> int:
        log = self._messages.get(thread_id, [])
        kept = [m for m in log if not predicate(m)]
        deleted = len(log) - len(kept)
        if thread_id in self._messages:
            self._messages[thread_id] = kept
        return deleted

    async def delete_messages_from(self, thread_id: int, message_id: int) -> int:
        return self._delete_where(thread_id, lambda m: m.id >= message_id)

    async def delete_messages_after(self, thread_id: int, message_id: int) -> int:
        return self._delete_where(thread_id, lambda m: m.id > message_id)

    async def delete_last_message(self, thread_id: int) -> Message | None:
        log = self._messages.get(thread_id)
        if not log:
            return None
        return log.pop()

    @property
    def backend_type(self) -> str:
        return "memory"
