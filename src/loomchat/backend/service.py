"""Chat backend: the operations a presentation layer invokes.

Hides how storage and the model provider cooperate to run a generation:
the prompt is rebuilt from the persisted log, streamed fragments are
published on the caller's channel, and the final response is persisted
before the single completion event is sent.
"""

import logging
import time
from collections.abc import Iterator, Sequence
from contextlib import contextmanager

from ..conversation.stream import StreamChannel
from ..conversation.thinking import split_thinking
from ..errors import BackendError, LoomChatError
from ..llm import ChatMessage, LLMProvider
from ..storage import ChatStore, Message, Role, Thread
from .attachments import append_pdf_attachments

logger = logging.getLogger(__name__)


@contextmanager
def _backend_call(action: str) -> Iterator[None]:
    """Translate storage/provider failures into BackendError."""
    try:
        yield
    except LoomChatError:
        raise
    except Exception as e:
        raise BackendError(f"Failed to {action}: {e}") from e


class ChatBackend:
    """Thread, message and generation operations over a store and a provider."""

    def __init__(self, store: ChatStore, llm: LLMProvider):
        self._store = store
        self._llm = llm

    @property
    def store(self) -> ChatStore:
        return self._store

    async def list_threads(self) -> list[Thread]:
        with _backend_call("list threads"):
            return await self._store.list_threads()

    async def list_messages(self, thread_id: int) -> list[Message]:
        with _backend_call(f"load messages for thread {thread_id}"):
            return await self._store.list_messages(thread_id)

    async def list_models(self) -> list[str]:
        with _backend_call("list models"):
            return await self._llm.list_models()

    async def create_thread(self, title: str, system_prompt: str | None = None) -> Thread:
        with _backend_call("create thread"):
            thread = await self._store.create_thread(title, system_prompt)
        logger.info("Created thread %s (%s)", thread.id, title)
        return thread

    async def rename_thread(self, thread_id: int, title: str) -> None:
        with _backend_call(f"rename thread {thread_id}"):
            await self._store.rename_thread(thread_id, title)

    async def archive_thread(self, thread_id: int) -> None:
        with _backend_call(f"archive thread {thread_id}"):
            await self._store.archive_thread(thread_id)

    async def delete_thread(self, thread_id: int) -> None:
        with _backend_call(f"delete thread {thread_id}"):
            await self._store.delete_thread(thread_id)
        logger.info("Deleted thread %s", thread_id)

    async def delete_message(self, thread_id: int, message_id: int) -> None:
        """Delete a message and every later message in the thread."""
        with _backend_call(f"delete message {message_id}"):
            deleted = await self._store.delete_messages_from(thread_id, message_id)
        logger.info("Deleted %d message(s) from thread %s", deleted, thread_id)

    async def send_message(
        self,
        thread_id: int,
        content: str,
        *,
        model: str,
        events: StreamChannel,
        images: Sequence[str] | None = None,
        pdfs: Sequence[str] | None = None,
        reply_to_id: int | None = None,
    ) -> None:
        """Persist a user message, then stream the model's answer."""
        with _backend_call("read attachments"):
            content = append_pdf_attachments(content, pdfs)
        with _backend_call("save message"):
            await self._store.add_message(
                thread_id,
                Role.USER,
                content,
                images=list(images) if images else None,
                model=model,
                reply_to_id=reply_to_id,
            )
        await self._generate(thread_id, model, events)

    async def regenerate_response(self, thread_id: int, model: str, events: StreamChannel) -> None:
        """Replace the last assistant message with a fresh generation."""
        with _backend_call("prepare regeneration"):
            messages = await self._store.list_messages(thread_id)
            if messages and messages[-1].role == Role.ASSISTANT:
                await self._store.delete_last_message(thread_id)
        await self._generate(thread_id, model, events)

    async def regenerate_from_message(
        self,
        thread_id: int,
        message_id: int,
        model: str,
        events: StreamChannel,
    ) -> None:
        """Discard a message and everything after it, then generate."""
        with _backend_call("prepare regeneration"):
            await self._store.delete_messages_from(thread_id, message_id)
        await self._generate(thread_id, model, events)

    async def edit_message(
        self,
        thread_id: int,
        message_id: int,
        new_content: str,
        model: str,
        events: StreamChannel,
    ) -> None:
        """Rewrite a message, drop the now-stale history after it, then generate."""
        with _backend_call(f"edit message {message_id}"):
            await self._store.update_message(thread_id, message_id, new_content)
            await self._store.delete_messages_after(thread_id, message_id)
        await self._generate(thread_id, model, events)

    async def _build_prompt(self, thread_id: int) -> list[ChatMessage]:
        thread = await self._store.get_thread(thread_id)
        history = await self._store.list_messages(thread_id)

        prompt: list[ChatMessage] = []
        if thread.system_prompt:
            prompt.append(ChatMessage(role="system", content=thread.system_prompt))
        prompt.extend(
            ChatMessage(role=m.role, content=m.content, images=m.images)
            for m in history
        )
        return prompt

    async def _generate(self, thread_id: int, model: str, events: StreamChannel) -> None:
        with _backend_call("prepare prompt"):
            prompt = await self._build_prompt(thread_id)

        started = time.perf_counter_ns()
        with _backend_call(f"generate with {model}"):
            stream = await self._llm.chat_completion_stream(prompt, model=model)
            async for fragment in stream:
                await events.send_delta(fragment)
        elapsed = time.perf_counter_ns() - started

        content = stream.text
        metrics = {
            "thinking_process": split_thinking(content).thinking,
            "total_duration": elapsed,
        }
        if stream.usage is not None:
            eval_count = stream.usage.completion_tokens
            metrics["prompt_eval_count"] = stream.usage.prompt_tokens
            metrics["eval_count"] = eval_count
            if eval_count and elapsed:
                metrics["tokens_per_second"] = eval_count / (elapsed / 1e9)

        with _backend_call("save response"):
            await self._store.add_message(
                thread_id, Role.ASSISTANT, content, model=model, metrics=metrics
            )
        logger.debug("Stored %d-character response for thread %s", len(content), thread_id)

        await events.send_done()
