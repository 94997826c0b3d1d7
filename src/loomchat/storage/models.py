"""Data models for persisted threads and messages.

These models define the records the storage layer hands out, independent
of the backend used. Persisted records are immutable.
"""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_serializer


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class Role(str, Enum):
    """Author of a message."""

    USER = "user"
    ASSISTANT = "assistant"


METRIC_FIELDS = (
    "thinking_process",
    "total_duration",
    "load_duration",
    "prompt_eval_count",
    "eval_count",
    "eval_duration",
    "tokens_per_second",
)


def clean_metrics(metrics: dict | None) -> dict:
    """Keep only known, non-empty metric fields."""
    if not metrics:
        return {}
    unknown = set(metrics) - set(METRIC_FIELDS)
    if unknown:
        raise ValueError(f"Unknown message metrics: {sorted(unknown)}")
    return {k: v for k, v in metrics.items() if v is not None}


class Thread(BaseModel):
    """One independent conversation."""

    model_config = ConfigDict(frozen=True)

    id: int = Field(description="Storage-assigned thread id")
    title: str
    created_at: datetime = Field(default_factory=utc_now)
    system_prompt: str | None = Field(
        default=None,
        description="Instruction preamble sent ahead of every generation"
    )
    is_archived: bool = False

    @field_serializer("created_at")
    def serialize_datetime(self, value: datetime) -> str:
        """Serialize datetime to ISO format."""
        return value.isoformat()


class Message(BaseModel):
    """One turn in a thread.

    `reply_to_id` makes the conversation a forest: when set it names the
    message this one answers. When absent the message is an implicit
    chronological reply.
    """

    model_config = ConfigDict(frozen=True, use_enum_values=True)

    id: int = Field(description="Storage-assigned id, monotonically increasing")
    thread_id: int
    role: Role
    content: str
    images: list[str] | None = Field(
        default=None,
        description="Base64-encoded images attached to the message"
    )
    created_at: datetime = Field(default_factory=utc_now)
    reply_to_id: int | None = None
    model: str | None = Field(default=None, description="Generator id (assistant only)")

    # Generation metrics, recorded when the provider reports them
    thinking_process: str | None = None
    total_duration: int | None = None
    load_duration: int | None = None
    prompt_eval_count: int | None = None
    eval_count: int | None = None
    eval_duration: int | None = None
    tokens_per_second: float | None = None

    @field_serializer("created_at")
    def serialize_datetime(self, value: datetime) -> str:
        """Serialize datetime to ISO format."""
        return value.isoformat()
