from abc import ABC, abstractmethod
from typing import Any

from .models import ChatMessage, StreamingResponse


class LLMProvider(ABC):
    """A model server that can stream chat completions.

    Hides which server answers and how: client setup, wire format of
    prompts and images, and how reasoning output is surfaced. Reasoning
    must arrive inline in the text stream, wrapped in <think> markers.

    Usable as an async context manager; the client is closed on exit:
        async with create_llm_provider("ollama") as llm:
            stream = await llm.chat_completion_stream(prompt)
    """

    @abstractmethod
    async def chat_completion_stream(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        **kwargs: Any
    ) -> StreamingResponse:
        """Start a streamed completion for a prompt.

        Args:
            messages: Instructions followed by the conversation, oldest first
            model: Model id; None means the provider's default
            **kwargs: Extra request parameters passed to the server

        Returns:
            Response whose iteration yields text fragments; `text` and
            `usage` are complete once iteration ends
        """

    @abstractmethod
    async def list_models(self) -> list[str]:
        """Model ids the server can generate with."""

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying client."""

    async def __aenter__(self) -> "LLMProvider":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        # httpx can report a closed loop while tearing down at interpreter exit
        try:
            await self.close()
        except RuntimeError as e:
            if "Event loop is closed" not in str(e):
                raise
