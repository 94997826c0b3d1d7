"""Chat session state.

One explicit object holds what the presentation layer needs: the thread
list, the active thread and its loaded messages, the selected model and
persona, the context policy, and one stream reconciler per thread.
Views render `forest()` and call the action methods; they keep no
conversation logic of their own.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import datetime
from itertools import count
from typing import TYPE_CHECKING

from ..config import DEFAULT_MODEL, FALLBACK_MODELS, NEW_THREAD_TITLE_FORMAT
from ..errors import BackendError, DestructiveActionError
from ..storage.models import Message, Role, Thread, utc_now
from .context import ContextAssembler, ContextPolicy
from .models import MessageForest, StreamingSnapshot
from .personas import DEFAULT_PERSONA_ID, get_persona
from .stream import StreamChannel, StreamReconciler
from .tree import build_message_tree

if TYPE_CHECKING:
    from ..backend import ChatBackend

logger = logging.getLogger(__name__)

Notifier = Callable[[str, BaseException], None]
GenerationRequest = Callable[[StreamChannel], Awaitable[None]]


@dataclass
class PendingConfirmation:
    """A destructive action waiting for the user to confirm it."""

    title: str
    message: str
    action: Callable[[], Awaitable[None]]


class ChatSession:
    """State and actions for one user's chat window."""

    def __init__(
        self,
        backend: "ChatBackend",
        notifier: Notifier | None = None,
        on_change: Callable[[MessageForest], None] | None = None,
        model: str = DEFAULT_MODEL,
        persona_id: str = DEFAULT_PERSONA_ID,
        context_policy: ContextPolicy | None = None,
    ) -> None:
        self._backend = backend
        self._notifier = notifier
        self._on_change = on_change
        self.model = model
        self.persona_id = persona_id
        self.context_policy = context_policy or ContextPolicy()

        self.threads: list[Thread] = []
        self.models: list[str] = []
        self.active_thread_id: int | None = None
        self.messages: list[Message] = []
        self.pending_confirmation: PendingConfirmation | None = None

        self._reconcilers: dict[int, StreamReconciler] = {}
        self._temp_ids = count(-2, -1)

    # -- notifications -------------------------------------------------

    def _notify(self, action: str, error: BaseException) -> None:
        logger.error("Failed to %s: %s", action, error)
        if self._notifier is not None:
            self._notifier(action, error)

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change(self.forest())

    # -- streaming state -----------------------------------------------

    def reconciler(self, thread_id: int) -> StreamReconciler:
        if thread_id not in self._reconcilers:
            self._reconcilers[thread_id] = StreamReconciler(
                thread_id,
                reload=lambda: self._reload_if_active(thread_id),
                on_change=lambda snapshot: self._changed(),
            )
        return self._reconcilers[thread_id]

    def is_streaming(self, thread_id: int | None = None) -> bool:
        thread_id = self.active_thread_id if thread_id is None else thread_id
        if thread_id is None or thread_id not in self._reconcilers:
            return False
        return self._reconcilers[thread_id].active

    def streaming_snapshot(self) -> StreamingSnapshot:
        if self.active_thread_id is None or self.active_thread_id not in self._reconcilers:
            return StreamingSnapshot()
        return self._reconcilers[self.active_thread_id].snapshot

    def forest(self) -> MessageForest:
        """Reply forest for the active thread, including any in-flight response."""
        return build_message_tree(self.messages, self.streaming_snapshot())

    # -- loading -------------------------------------------------------

    async def load_threads(self) -> list[Thread]:
        try:
            self.threads = await self._backend.list_threads()
        except BackendError as e:
            self._notify("load threads", e)
        return self.threads

    async def load_models(self) -> list[str]:
        """Load available models, falling back to a fixed list."""
        try:
            models = await self._backend.list_models()
        except BackendError as e:
            logger.warning("Failed to load models: %s", e)
            models = []

        if models:
            self.models = models
            self.model = models[0]
        else:
            self.models = list(FALLBACK_MODELS)
        return self.models

    async def reload_messages(self) -> None:
        if self.active_thread_id is None:
            self.messages = []
        else:
            self.messages = await self._backend.list_messages(self.active_thread_id)
        self._changed()

    async def _reload_if_active(self, thread_id: int) -> None:
        if thread_id == self.active_thread_id:
            await self.reload_messages()

    async def select_thread(self, thread_id: int | None) -> None:
        self.active_thread_id = thread_id
        try:
            await self.reload_messages()
        except BackendError as e:
            self._notify("load messages", e)

    # -- thread lifecycle ----------------------------------------------

    async def build_instructions(self) -> str | None:
        """Persona instructions for a new thread, plus smart context if enabled."""
        base = get_persona(self.persona_id).system_prompt
        assembler = ContextAssembler(self._backend.list_messages)
        current = self.messages if self.active_thread_id is not None else []
        return await assembler.build_instructions(base, self.context_policy, self.threads, current)

    async def new_thread(self, title: str | None = None) -> Thread | None:
        """Create a thread and make it active."""
        system_prompt = await self.build_instructions()
        title = title or datetime.now().strftime(NEW_THREAD_TITLE_FORMAT)
        try:
            thread = await self._backend.create_thread(title, system_prompt)
        except BackendError as e:
            self._notify("create thread", e)
            return None

        self.threads.insert(0, thread)
        self.active_thread_id = thread.id
        self.messages = []
        self._changed()
        return thread

    async def rename_thread(self, thread_id: int, title: str) -> None:
        try:
            await self._backend.rename_thread(thread_id, title)
        except BackendError as e:
            self._notify("rename thread", e)
            return
        self.threads = [
            t.model_copy(update={"title": title}) if t.id == thread_id else t
            for t in self.threads
        ]

    async def archive_thread(self, thread_id: int) -> None:
        try:
            await self._backend.archive_thread(thread_id)
        except BackendError as e:
            self._notify("archive thread", e)
            return
        self.threads = [t for t in self.threads if t.id != thread_id]
        if self.active_thread_id == thread_id:
            await self.select_thread(None)

    # -- destructive actions ---------------------------------------------

    def request_delete_thread(self, thread_id: int) -> PendingConfirmation:
        async def _delete() -> None:
            await self._backend.delete_thread(thread_id)
            self.threads = [t for t in self.threads if t.id != thread_id]
            if self.active_thread_id == thread_id:
                self.active_thread_id = None
                self.messages = []
                self._changed()

        self.pending_confirmation = PendingConfirmation(
            title="Delete Chat",
            message="Are you sure you want to delete this chat? This action cannot be undone.",
            action=_delete,
        )
        return self.pending_confirmation

    def request_delete_message(self, message_id: int) -> PendingConfirmation | None:
        thread_id = self.active_thread_id
        if thread_id is None:
            return None

        async def _delete() -> None:
            await self._backend.delete_message(thread_id, message_id)
            await self._reload_if_active(thread_id)

        self.pending_confirmation = PendingConfirmation(
            title="Delete Message",
            message=(
                "Are you sure you want to delete this message? "
                "This will also delete all subsequent messages."
            ),
            action=_delete,
        )
        return self.pending_confirmation

    def cancel_confirmation(self) -> None:
        self.pending_confirmation = None

    async def confirm(self) -> None:
        """Run the pending destructive action.

        The pending state is cleared whatever the outcome.

        Raises:
            DestructiveActionError: If the action failed
        """
        pending, self.pending_confirmation = self.pending_confirmation, None
        if pending is None:
            return
        try:
            await pending.action()
        except BackendError as e:
            logger.error("%s failed: %s", pending.title, e)
            raise DestructiveActionError(f"{pending.title} failed: {e}") from e

    # -- generation ----------------------------------------------------

    async def _generate(
        self,
        thread_id: int,
        action: str,
        request: GenerationRequest,
        optimistic: Callable[[], None] | None = None,
    ) -> bool:
        """Run one generation cycle for a thread.

        The thread is back to idle whenever this returns or raises.

        Returns:
            True if the generation completed, False if the backend failed

        Raises:
            StreamBusyError: If the thread is already streaming
        """
        reconciler = self.reconciler(thread_id)
        reconciler.begin()
        try:
            if optimistic is not None:
                optimistic()
                self._changed()
            error = await self._run_cycle(reconciler, request)
        except BaseException as e:
            await self._abandon(reconciler, e)
            raise

        if error is None:
            return True
        if not reconciler.active:
            # The response was stored; only the reload after completion failed
            self._notify("reload messages", error)
            return True

        await self._abandon(reconciler, error)
        self._notify(action, error)
        if not isinstance(error, BackendError):
            raise error
        return False

    async def _run_cycle(
        self, reconciler: StreamReconciler, request: GenerationRequest
    ) -> BaseException | None:
        """Run the backend request and the reconciler side by side.

        Returns:
            The first error raised by either side, or None
        """
        channel = StreamChannel()
        producer = asyncio.create_task(request(channel))
        consumer = asyncio.create_task(reconciler.pump(channel))
        try:
            await asyncio.wait({producer, consumer}, return_when=asyncio.FIRST_EXCEPTION)
        finally:
            # A side left running would block forever on the bounded channel
            for task in (producer, consumer):
                if not task.done():
                    task.cancel()
            await asyncio.gather(producer, consumer, return_exceptions=True)

        for task in (producer, consumer):
            if not task.cancelled() and task.exception() is not None:
                return task.exception()
        return None

    async def _abandon(self, reconciler: StreamReconciler, error: BaseException) -> None:
        """Return a thread to idle after a failed cycle, rolling back local changes."""
        if not reconciler.active:
            return
        try:
            await reconciler.fail(error)
        except Exception as reload_error:
            logger.warning("Reload after failed generation also failed: %s", reload_error)

    async def send_message(
        self,
        content: str,
        images: Sequence[str] | None = None,
        pdfs: Sequence[str] | None = None,
        reply_to_id: int | None = None,
    ) -> bool:
        """Send a user message to the active thread and stream the answer."""
        thread_id = self.active_thread_id
        if thread_id is None:
            return False

        def _show_pending() -> None:
            self.messages = [
                *self.messages,
                Message(
                    id=next(self._temp_ids),
                    thread_id=thread_id,
                    role=Role.USER,
                    content=content,
                    images=list(images) if images else None,
                    created_at=utc_now(),
                    reply_to_id=reply_to_id,
                ),
            ]

        return await self._generate(
            thread_id,
            "send message",
            lambda events: self._backend.send_message(
                thread_id,
                content,
                model=self.model,
                events=events,
                images=images,
                pdfs=pdfs,
                reply_to_id=reply_to_id,
            ),
            optimistic=_show_pending,
        )

    async def retry(self) -> bool:
        """Regenerate the last response of the active thread."""
        thread_id = self.active_thread_id
        if thread_id is None:
            return False

        def _drop_last_answer() -> None:
            if self.messages and self.messages[-1].role == Role.ASSISTANT:
                self.messages = self.messages[:-1]

        return await self._generate(
            thread_id,
            "regenerate",
            lambda events: self._backend.regenerate_response(thread_id, self.model, events),
            optimistic=_drop_last_answer,
        )

    async def regenerate(self, message_id: int, model: str | None = None) -> bool:
        """Discard a message and everything after it, then generate again."""
        thread_id = self.active_thread_id
        if thread_id is None:
            return False
        model = model or self.model

        def _truncate() -> None:
            index = next((i for i, m in enumerate(self.messages) if m.id == message_id), None)
            if index is not None:
                self.messages = self.messages[:index]

        return await self._generate(
            thread_id,
            "regenerate",
            lambda events: self._backend.regenerate_from_message(thread_id, message_id, model, events),
            optimistic=_truncate,
        )

    async def edit(self, message_id: int, new_content: str) -> bool:
        """Rewrite a message and regenerate the conversation from it."""
        thread_id = self.active_thread_id
        if thread_id is None:
            return False

        def _apply_edit() -> None:
            index = next((i for i, m in enumerate(self.messages) if m.id == message_id), None)
            if index is not None:
                kept = self.messages[:index + 1]
                kept[index] = kept[index].model_copy(update={"content": new_content})
                self.messages = kept

        return await self._generate(
            thread_id,
            "edit message",
            lambda events: self._backend.edit_message(
                thread_id, message_id, new_content, self.model, events
            ),
            optimistic=_apply_edit,
        )
