"""Provider factory functions for CLI.

Centralizes creation of the chat store, LLM provider and backend from
environment variables. Hides configuration details from command
implementations.
"""

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from rich.console import Console
from rich.logging import RichHandler

from ..backend import ChatBackend
from ..config import DEFAULT_DB_PATH, DEFAULT_MODEL, DEFAULT_OLLAMA_BASE_URL
from ..llm import LLMProvider, create_llm_provider
from ..storage import ChatStore, create_chat_store

# Default console for output
_console = Console()

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def configure_logging(level: str = "warning", console: Console | None = None) -> None:
    """Route loomchat logs through Rich.

    Unknown level names fall back to WARNING.
    """
    handler = RichHandler(console=console or _console, show_path=False, rich_tracebacks=True)
    logging.basicConfig(
        level=LOG_LEVELS.get(level.lower(), logging.WARNING),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[handler],
        force=True,
    )


def get_store() -> ChatStore:
    """Create chat store from environment variables.

    Environment variables:
        LOOMCHAT_STORE: Backend type (sqlite or memory; default: sqlite)
        LOOMCHAT_DB_PATH: SQLite database path (default: ./chat.db)
    """
    backend = os.getenv("LOOMCHAT_STORE", "sqlite").lower()
    if backend == "sqlite":
        return create_chat_store("sqlite", path=os.getenv("LOOMCHAT_DB_PATH", DEFAULT_DB_PATH))
    return create_chat_store(backend)


def get_model() -> str:
    """Default model id.

    Environment variables:
        LOOMCHAT_MODEL: Model to generate with (default: qwen3-vl)
    """
    return os.getenv("LOOMCHAT_MODEL", DEFAULT_MODEL)


def get_llm() -> LLMProvider:
    """Create LLM provider from environment variables.

    Environment variables:
        OLLAMA_BASE_URL: OpenAI-compatible Ollama endpoint
            (default: http://localhost:11434/v1)
        LOOMCHAT_MODEL: Default model
    """
    return create_llm_provider(
        "ollama",
        base_url=os.getenv("OLLAMA_BASE_URL", DEFAULT_OLLAMA_BASE_URL),
        model=get_model(),
    )


@asynccontextmanager
async def open_backend() -> AsyncIterator[ChatBackend]:
    """Connected backend; the store and provider are closed on exit."""
    store = get_store()
    llm = get_llm()
    await store.connect()
    try:
        yield ChatBackend(store, llm)
    finally:
        await store.disconnect()
        await llm.close()
