"""Pytest configuration and shared fixtures."""
from datetime import datetime, timedelta, timezone

import pytest

from loomchat.backend import ChatBackend
from loomchat.llm import ChatMessage, LLMProvider, StreamingResponse, TokenUsage
from loomchat.storage import Message, create_chat_store

BASE_TIME = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeLLMProvider(LLMProvider):
    """Scripted provider: yields fixed chunks, optionally failing."""

    def __init__(
        self,
        chunks: list[str] | None = None,
        usage: dict | None = None,
        fail_before: Exception | None = None,
        fail_after: Exception | None = None,
        models: list[str] | None = None,
    ):
        self.chunks = ["Hello", ", ", "world"] if chunks is None else chunks
        self.usage = usage
        self.fail_before = fail_before
        self.fail_after = fail_after
        self.models = ["qwen3-vl", "llama2"] if models is None else models
        self.prompts: list[list[ChatMessage]] = []
        self.requested_models: list[str | None] = []
        self.closed = False

    async def chat_completion_stream(self, messages, model=None, **kwargs):
        self.prompts.append(list(messages))
        self.requested_models.append(model)
        if self.fail_before is not None:
            raise self.fail_before

        response = StreamingResponse()

        async def _chunks():
            for chunk in self.chunks:
                yield chunk
            if self.fail_after is not None:
                raise self.fail_after
            if self.usage is not None:
                response.set_usage(TokenUsage(**self.usage))

        response.attach(_chunks())
        return response

    async def list_models(self):
        if isinstance(self.models, Exception):
            raise self.models
        return list(self.models)

    async def close(self):
        self.closed = True


@pytest.fixture
def make_message():
    """Factory for detached messages with increasing timestamps."""
    def _make(message_id, role="user", content=None, reply_to_id=None, thread_id=1, **extra):
        return Message(
            id=message_id,
            thread_id=thread_id,
            role=role,
            content=content if content is not None else f"message {message_id}",
            reply_to_id=reply_to_id,
            created_at=BASE_TIME + timedelta(seconds=message_id),
            **extra,
        )

    return _make


@pytest.fixture(params=["memory", "sqlite"])
async def store(request, tmp_path):
    """A connected chat store, for each storage backend."""
    if request.param == "sqlite":
        chat_store = create_chat_store("sqlite", path=tmp_path / "chat.db")
    else:
        chat_store = create_chat_store("memory")
    await chat_store.connect()
    yield chat_store
    await chat_store.disconnect()


@pytest.fixture
async def memory_store():
    chat_store = create_chat_store("memory")
    await chat_store.connect()
    yield chat_store
    await chat_store.disconnect()


@pytest.fixture
def fake_llm():
    return FakeLLMProvider()


@pytest.fixture
def backend(memory_store, fake_llm):
    return ChatBackend(memory_store, fake_llm)


@pytest.fixture
def make_llm():
    """Factory for scripted providers."""
    return FakeLLMProvider
