"""Context assembly for new conversations.

Builds the "smart context" transcript that seeds a new thread's
instructions with recent messages from other threads. Assembly never
blocks thread creation: failures degrade to partial or empty context.
"""

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field

from ..config import (
    CONTEXT_CLOSE_MARKER,
    CONTEXT_MESSAGES_PER_THREAD,
    CONTEXT_MESSAGES_TOTAL,
    CONTEXT_OPEN_MARKER,
)
from ..storage.models import Message, Thread

logger = logging.getLogger(__name__)

MessageFetcher = Callable[[int], Awaitable[list[Message]]]


@dataclass
class ContextPolicy:
    """Where context for a new thread comes from."""

    enabled: bool = False
    source_thread_ids: list[int] = field(default_factory=list)


def render_transcript(messages: Sequence[Message]) -> str:
    """One `ROLE: content` line per message."""
    return "\n".join(f"{m.role.upper()}: {m.content}" for m in messages)


def wrap_instructions(base_instructions: str | None, transcript: str) -> str:
    """Append a delimited transcript to the persona's base instructions."""
    return (
        f"{base_instructions or ''}\n\n"
        f"{CONTEXT_OPEN_MARKER}\n{transcript}\n{CONTEXT_CLOSE_MARKER}\n"
    )


class ContextAssembler:
    """Selects, orders and caps context messages.

    Selection policy, first match wins:
    1. Explicit source threads: the last few messages of each
    2. The active thread's messages
    3. The full log of the first available thread
    4. No context
    """

    def __init__(
        self,
        fetch_messages: MessageFetcher,
        per_thread_limit: int = CONTEXT_MESSAGES_PER_THREAD,
        total_limit: int = CONTEXT_MESSAGES_TOTAL,
    ):
        self._fetch = fetch_messages
        self._per_thread_limit = per_thread_limit
        self._total_limit = total_limit

    async def _from_sources(self, thread_ids: Sequence[int]) -> list[Message]:
        pool: list[Message] = []
        for thread_id in thread_ids:
            try:
                messages = await self._fetch(thread_id)
            except Exception as e:
                logger.warning("Failed to fetch context for thread %s: %s", thread_id, e)
                continue
            pool.extend(messages[-self._per_thread_limit:])
        return pool

    async def select(
        self,
        policy: ContextPolicy,
        available_threads: Sequence[Thread],
        current_messages: Sequence[Message],
    ) -> list[Message]:
        """Candidate messages, sorted by creation time and capped."""
        if policy.source_thread_ids:
            pool = await self._from_sources(policy.source_thread_ids)
        elif current_messages:
            pool = list(current_messages)
        elif available_threads:
            pool = await self._fetch(available_threads[0].id)
        else:
            pool = []

        pool.sort(key=lambda m: m.created_at)
        return pool[-self._total_limit:] if pool else []

    async def assemble(
        self,
        policy: ContextPolicy,
        available_threads: Sequence[Thread],
        current_messages: Sequence[Message],
    ) -> str:
        """Transcript of the selected messages, or "" when there is no context."""
        try:
            selected = await self.select(policy, available_threads, current_messages)
        except Exception as e:
            logger.error("Failed to load smart context: %s", e)
            return ""
        return render_transcript(selected)

    async def build_instructions(
        self,
        base_instructions: str | None,
        policy: ContextPolicy,
        available_threads: Sequence[Thread],
        current_messages: Sequence[Message],
    ) -> str | None:
        """Instructions for a new thread, with context appended when available."""
        if not policy.enabled:
            return base_instructions
        transcript = await self.assemble(policy, available_threads, current_messages)
        if not transcript:
            return base_instructions
        return wrap_instructions(base_instructions, transcript)


async def assemble_context(
    fetch_messages: MessageFetcher,
    policy: ContextPolicy,
    available_threads: Sequence[Thread],
    current_messages: Sequence[Message],
) -> str:
    """Convenience wrapper around ContextAssembler.assemble."""
    return await ContextAssembler(fetch_messages).assemble(
        policy, available_threads, current_messages
    )
