"""Unit tests for the LLM module."""
from types import SimpleNamespace

import pytest

from loomchat.config import THINK_CLOSE_TAG, THINK_OPEN_TAG
from loomchat.llm import ChatMessage, LLMProvider, OllamaProvider, TokenUsage, create_llm_provider
from loomchat.llm.providers.ollama import _message_to_openai, _reasoning_text


def _chunk(content=None, reasoning=None, usage=None):
    extra = {"reasoning": reasoning} if reasoning else {}
    delta = SimpleNamespace(content=content, model_extra=extra)
    choices = [] if usage else [SimpleNamespace(delta=delta)]
    return SimpleNamespace(choices=choices, usage=usage)


class FakeCompletions:
    def __init__(self, chunks):
        self.chunks = chunks
        self.requests = []

    async def create(self, **kwargs):
        self.requests.append(kwargs)

        async def _stream():
            for chunk in self.chunks:
                yield chunk

        return _stream()


def _provider_with(chunks) -> tuple[OllamaProvider, FakeCompletions]:
    provider = OllamaProvider(model="qwen3-vl")
    completions = FakeCompletions(chunks)
    provider._client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return provider, completions


class TestLLMProviderInterface:
    """Tests for LLMProvider interface."""

    def test_provider_is_abstract(self):
        """Test that LLMProvider cannot be instantiated directly."""
        with pytest.raises(TypeError):
            LLMProvider()  # type: ignore


class TestMessageConversion:
    """Tests for OpenAI-format conversion."""

    def test_text_message(self):
        """Test a plain message."""
        message = ChatMessage(role="user", content="Hi")

        assert _message_to_openai(message) == {"role": "user", "content": "Hi"}

    def test_images_become_content_parts(self):
        """Test that images are sent as data URIs."""
        message = ChatMessage(
            role="user",
            content="What is this?",
            images=["aW1n", "data:image/jpeg;base64,anBn"],
        )

        converted = _message_to_openai(message)

        assert converted["content"] == [
            {"type": "text", "text": "What is this?"},
            {"type": "image_url", "image_url": {"url": "data:image/png;base64,aW1n"}},
            {"type": "image_url", "image_url": {"url": "data:image/jpeg;base64,anBn"}},
        ]

    def test_reasoning_text(self):
        """Test both reasoning field names."""
        assert _reasoning_text(SimpleNamespace(model_extra={"reasoning": "a"})) == "a"
        assert _reasoning_text(SimpleNamespace(model_extra={"reasoning_content": "b"})) == "b"
        assert _reasoning_text(SimpleNamespace(model_extra=None)) is None


class TestOllamaStreaming:
    """Tests for the streaming generator."""

    @pytest.mark.asyncio
    async def test_reasoning_wrapped_in_think_tags(self):
        """Test that reasoning and answer come out as one marked-up stream."""
        usage = SimpleNamespace(prompt_tokens=5, completion_tokens=4, total_tokens=9)
        provider, completions = _provider_with([
            _chunk(reasoning="Let me "),
            _chunk(reasoning="think."),
            _chunk(content="Answer"),
            _chunk(usage=usage),
        ])

        stream = await provider.chat_completion_stream([ChatMessage(role="user", content="Q")])
        text = "".join([chunk async for chunk in stream])

        assert text == f"{THINK_OPEN_TAG}Let me think.{THINK_CLOSE_TAG}Answer"
        assert stream.usage == TokenUsage(prompt_tokens=5, completion_tokens=4, total_tokens=9)
        assert stream.text == text
        assert completions.requests[0]["model"] == "qwen3-vl"
        assert completions.requests[0]["stream"] is True

    @pytest.mark.asyncio
    async def test_unterminated_reasoning_is_closed(self):
        """Test that a stream ending mid-reasoning still closes the block."""
        provider, _ = _provider_with([_chunk(reasoning="hmm")])

        stream = await provider.chat_completion_stream(
            [ChatMessage(role="user", content="Q")], model="other"
        )
        text = "".join([chunk async for chunk in stream])

        assert text == f"{THINK_OPEN_TAG}hmm{THINK_CLOSE_TAG}"


class TestLLMFactory:
    """Tests for the provider factory."""

    def test_create_ollama_provider(self):
        """Test creating the default provider."""
        provider = create_llm_provider("ollama", model="llama2")

        assert isinstance(provider, OllamaProvider)
        assert provider.model == "llama2"

    def test_create_provider_unknown_type(self):
        """Test that unknown providers are rejected."""
        with pytest.raises(ValueError):
            create_llm_provider("unknown")
