from collections.abc import AsyncIterator

from pydantic import BaseModel, ConfigDict, Field


class TokenUsage(BaseModel):
    """Token counts reported by the server at the end of a stream."""

    model_config = ConfigDict(frozen=True)

    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None


class StreamingResponse:
    """One streamed generation: text fragments now, usage at the end.

    Iterating yields fragments in arrival order and keeps a running copy
    of the full text. Usage is only known once the stream is exhausted.

    Usage:
        stream = await provider.chat_completion_stream(messages)
        async for fragment in stream:
            publish(fragment)
        save(stream.text, stream.usage)
    """

    def __init__(self, fragments: AsyncIterator[str] | None = None):
        self._fragments = fragments
        self._parts: list[str] = []
        self._usage: TokenUsage | None = None

    def attach(self, fragments: AsyncIterator[str]) -> None:
        """Set the fragment source; used when the producer needs a handle on this object."""
        self._fragments = fragments

    @property
    def text(self) -> str:
        """Everything received so far."""
        return "".join(self._parts)

    @property
    def usage(self) -> TokenUsage | None:
        return self._usage

    def set_usage(self, usage: TokenUsage) -> None:
        self._usage = usage

    def __aiter__(self) -> "StreamingResponse":
        return self

    async def __anext__(self) -> str:
        if self._fragments is None:
            raise StopAsyncIteration
        fragment = await self._fragments.__anext__()
        self._parts.append(fragment)
        return fragment


class ChatMessage(BaseModel):
    """One prompt entry sent to the model."""

    model_config = ConfigDict(frozen=True)

    role: str = Field(description="'system', 'user' or 'assistant'")
    content: str
    images: list[str] | None = Field(
        default=None,
        description="Base64-encoded images (user messages only)"
    )
