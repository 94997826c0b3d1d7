from typing import Any

from .base import LLMProvider
from .providers import OllamaProvider


def create_llm_provider(provider: str = "ollama", **config: Any) -> LLMProvider:
    """Build the model server client named by `provider`.

    Args:
        provider: Server kind; only 'ollama' is supported
        **config: Passed to the provider, e.g. `model` and `base_url`

    Raises:
        ValueError: For an unknown server kind

    Examples:
        >>> llm = create_llm_provider("ollama", model="llama3.2")
    """
    if provider.lower() == "ollama":
        return OllamaProvider(**config)

    raise ValueError(f"Unsupported provider: {provider!r}. Supported providers: 'ollama'")
