"""Exception hierarchy for loomchat."""


class LoomChatError(Exception):
    """Base class for all loomchat errors."""


class BackendError(LoomChatError):
    """A backend call (storage or model provider) failed."""


class ThreadNotFoundError(BackendError):
    """The requested thread does not exist."""

    def __init__(self, thread_id: int):
        super().__init__(f"Thread {thread_id} not found")
        self.thread_id = thread_id


class MessageNotFoundError(BackendError):
    """The requested message does not exist in the thread."""

    def __init__(self, thread_id: int, message_id: int):
        super().__init__(f"Message {message_id} not found in thread {thread_id}")
        self.thread_id = thread_id
        self.message_id = message_id


class StreamBusyError(LoomChatError):
    """A generation was requested while the thread is already streaming."""

    def __init__(self, thread_id: int):
        super().__init__(f"Thread {thread_id} is already streaming a response")
        self.thread_id = thread_id


class StreamStateError(LoomChatError):
    """An event arrived that is not legal in the reconciler's current state."""


class DestructiveActionError(LoomChatError):
    """A confirmed delete of a thread or message failed."""
