from .base import LLMProvider
from .factory import create_llm_provider
from .models import ChatMessage, StreamingResponse, TokenUsage
from .providers import OllamaProvider

__all__ = [
    "LLMProvider",
    "create_llm_provider",
    "ChatMessage",
    "StreamingResponse",
    "TokenUsage",
    "OllamaProvider",
]
