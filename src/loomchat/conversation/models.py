"""In-memory conversation structures.

Hides the internal representation of the reply forest: nodes live in an
id-indexed arena and refer to their children by id, so grafting a node is
an index update rather than a structural copy.
"""

from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum

from ..config import STREAMING_NODE_ID
from ..storage.models import Message


class StreamState(str, Enum):
    """Lifecycle of one in-flight generation."""

    IDLE = "idle"
    STREAMING = "streaming"
    COMPLETING = "completing"
    FAILED = "failed"


@dataclass(frozen=True)
class StreamingSnapshot:
    """Ephemeral view of an in-flight response."""

    content: str = ""
    active: bool = False


@dataclass
class MessageNode:
    """A message decorated with its replies.

    `parent_id` is the working reply link used to place the node, which may
    be inferred rather than stored on the message.
    """

    message: Message
    parent_id: int | None = None
    children: list[int] = field(default_factory=list)

    @property
    def id(self) -> int:
        return self.message.id

    @property
    def role(self) -> str:
        return self.message.role

    @property
    def content(self) -> str:
        return self.message.content

    @property
    def is_streaming(self) -> bool:
        return self.message.id == STREAMING_NODE_ID


@dataclass
class MessageForest:
    """Arena of message nodes plus the ordered list of root ids."""

    nodes: dict[int, MessageNode] = field(default_factory=dict)
    roots: list[int] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, message_id: object) -> bool:
        return message_id in self.nodes

    def __getitem__(self, message_id: int) -> MessageNode:
        return self.nodes[message_id]

    def find(self, message_id: int) -> MessageNode | None:
        return self.nodes.get(message_id)

    def add_root(self, node: MessageNode) -> None:
        self.nodes[node.id] = node
        self.roots.append(node.id)

    def add_child(self, parent_id: int, node: MessageNode) -> None:
        node.parent_id = parent_id
        self.nodes[node.id] = node
        self.nodes[parent_id].children.append(node.id)

    def root_nodes(self) -> list[MessageNode]:
        return [self.nodes[i] for i in self.roots]

    def children(self, message_id: int) -> list[MessageNode]:
        return [self.nodes[i] for i in self.nodes[message_id].children]

    def walk(self) -> Iterator[tuple[MessageNode, int]]:
        """Depth-first pre-order traversal yielding (node, depth)."""
        stack = [(i, 0) for i in reversed(self.roots)]
        while stack:
            node_id, depth = stack.pop()
            node = self.nodes[node_id]
            yield node, depth
            stack.extend((child, depth + 1) for child in reversed(node.children))

    @property
    def streaming_node(self) -> MessageNode | None:
        return self.nodes.get(STREAMING_NODE_ID)

    def to_nested(self) -> list[dict]:
        """Nested dict form of the forest, for serialization and display."""
        def _nest(node_id: int) -> dict:
            node = self.nodes[node_id]
            data = node.message.model_dump(mode="json", exclude_none=True)
            data["children"] = [_nest(child) for child in node.children]
            return data

        return [_nest(root) for root in self.roots]
