from collections.abc import AsyncIterator
from typing import Any

from openai import AsyncOpenAI

from ...config import DEFAULT_MODEL, DEFAULT_OLLAMA_BASE_URL, THINK_CLOSE_TAG, THINK_OPEN_TAG
from ..base import LLMProvider
from ..models import ChatMessage, StreamingResponse, TokenUsage


def _message_to_openai(msg: ChatMessage) -> dict[str, Any]:
    """Convert a chat message to the OpenAI chat format.

    Images become `image_url` content parts carrying a base64 data URI.
    """
    if not msg.images:
        return {"role": msg.role, "content": msg.content}

    parts: list[dict[str, Any]] = [{"type": "text", "text": msg.content}]
    for image in msg.images:
        url = image if image.startswith("data:") else f"data:image/png;base64,{image}"
        parts.append({"type": "image_url", "image_url": {"url": url}})
    return {"role": msg.role, "content": parts}


def _reasoning_text(delta: Any) -> str | None:
    """Reasoning fragment of a delta, if the server sent one.

    Ollama reports it as `reasoning`, other OpenAI-compatible servers as
    `reasoning_content`; neither is a declared field of the SDK model.
    """
    extra = getattr(delta, "model_extra", None) or {}
    return extra.get("reasoning") or extra.get("reasoning_content")


class OllamaProvider(LLMProvider):
    """Local Ollama provider using its OpenAI-compatible API.

    Hidden design decisions:
    - Ollama client initialization (via OpenAI SDK)
    - Message and image format conversion
    - Wrapping reasoning output in <think> markers
    """

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_OLLAMA_BASE_URL,
        api_key: str = "ollama",
        **client_kwargs: Any
    ):
        """
        Args:
            model: Model used when a request names none
            base_url: OpenAI-compatible endpoint of the Ollama server
            api_key: Ignored by Ollama but required by the SDK
            **client_kwargs: Passed through to AsyncOpenAI (timeouts, retries)
        """
        self._model = model
        self._client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            **client_kwargs
        )

    @property
    def model(self) -> str:
        """Model used when a request names none."""
        return self._model

    async def chat_completion_stream(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        **kwargs: Any
    ) -> StreamingResponse:
        """Stream a completion; reasoning is yielded inline in <think> markers."""
        model_to_use = model or self._model
        payload = [_message_to_openai(msg) for msg in messages]

        response = StreamingResponse()
        response.attach(self._stream_generator(response, model_to_use, payload, **kwargs))
        return response

    async def _stream_generator(
        self,
        response: StreamingResponse,
        model: str,
        messages: list[dict[str, Any]],
        **kwargs: Any,
    ) -> AsyncIterator[str]:
        """Yield text fragments and record usage on `response` at the end."""
        stream = await self._client.chat.completions.create(
            model=model,
            messages=messages,
            stream=True,
            stream_options={"include_usage": True},
            **kwargs,
        )

        thinking = False
        async for chunk in stream:
            if chunk.usage is not None:
                response.set_usage(TokenUsage(
                    prompt_tokens=chunk.usage.prompt_tokens,
                    completion_tokens=chunk.usage.completion_tokens,
                    total_tokens=chunk.usage.total_tokens,
                ))
            if not chunk.choices:
                continue

            delta = chunk.choices[0].delta
            reasoning = _reasoning_text(delta)
            if reasoning:
                if not thinking:
                    thinking = True
                    yield THINK_OPEN_TAG
                yield reasoning

            if delta.content:
                if thinking:
                    thinking = False
                    yield THINK_CLOSE_TAG
                yield delta.content

        if thinking:
            yield THINK_CLOSE_TAG

    async def list_models(self) -> list[str]:
        """List locally available models."""
        page = await self._client.models.list()
        return [m.id for m in page.data]

    async def close(self) -> None:
        """Close the underlying client."""
        await self._client.close()
