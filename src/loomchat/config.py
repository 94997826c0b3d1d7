"""Configuration constants.

Centralizes limits and defaults shared by the conversation core, the
backend and the CLI.
"""

# Context assembly
CONTEXT_MESSAGES_PER_THREAD = 5  # Tail taken from each explicitly selected thread
CONTEXT_MESSAGES_TOTAL = 20  # Global cap after merging and sorting
CONTEXT_OPEN_MARKER = "[CONTEXT FROM PREVIOUS SESSION]"
CONTEXT_CLOSE_MARKER = "[END CONTEXT]"

# Streaming
STREAMING_NODE_ID = -1  # Storage ids are always positive
EVENT_CHANNEL_SIZE = 256  # Pending deltas before the producer waits

# Thinking markers emitted around streamed reasoning text
THINK_OPEN_TAG = "<think>\n"
THINK_CLOSE_TAG = "\n</think>\n"

# Models
DEFAULT_MODEL = "qwen3-vl"
FALLBACK_MODELS = ["llama2", "mistral"]
DEFAULT_OLLAMA_BASE_URL = "http://localhost:11434/v1"

# Storage
DEFAULT_DB_PATH = "./chat.db"

# Threads
NEW_THREAD_TITLE_FORMAT = "New Chat %H:%M:%S"
