"""Rich rendering of reply forests.

Hides how a forest is laid out in the terminal: one tree branch per
reply, reasoning sections dimmed, the in-flight response marked.
"""

from collections.abc import Sequence

from rich.console import Group, RenderableType
from rich.markdown import Markdown
from rich.table import Table
from rich.text import Text
from rich.tree import Tree

from ..config import CONTEXT_OPEN_MARKER
from ..conversation.models import MessageForest, MessageNode
from ..conversation.thinking import split_thinking
from ..storage.models import Role, Thread

PREVIEW_LENGTH = 200  # Characters of reasoning shown before truncating
STREAMING_CURSOR = "▌"

ROLE_STYLES = {
    Role.USER.value: "bold yellow",
    Role.ASSISTANT.value: "bold green",
}


def message_header(node: MessageNode) -> Text:
    """One-line label: role, id, model."""
    message = node.message
    header = Text()
    header.append(message.role.upper(), style=ROLE_STYLES.get(message.role, "bold"))
    if node.is_streaming:
        header.append("  (streaming)", style="italic cyan")
    else:
        header.append(f"  #{message.id}", style="dim")
    if message.model and message.role == Role.ASSISTANT.value:
        header.append(f"  {message.model}", style="magenta")
    if message.images:
        header.append(f"  [{len(message.images)} image(s)]", style="dim")
    return header


def render_message(node: MessageNode, markdown: bool = True) -> RenderableType:
    """Header, optional reasoning preview, then the answer body."""
    split = split_thinking(node.content)
    parts: list[RenderableType] = [message_header(node)]

    if split.thinking:
        thinking = split.thinking.strip()
        if len(thinking) > PREVIEW_LENGTH:
            thinking = thinking[:PREVIEW_LENGTH] + "..."
        label = "thinking..." if split.is_open else "thought"
        parts.append(Text(f"[{label}] {thinking}", style="dim italic"))

    body = split.body
    if node.is_streaming:
        parts.append(Text(body + STREAMING_CURSOR))
    elif markdown and body:
        parts.append(Markdown(body))
    elif body:
        parts.append(Text(body))

    return Group(*parts)


def render_forest(forest: MessageForest, title: str = "Conversation", markdown: bool = True) -> Tree:
    """Render every root and its replies as a Rich tree."""
    tree = Tree(Text(title, style="bold cyan"), guide_style="dim")

    def _add(branch: Tree, node: MessageNode) -> None:
        child = branch.add(render_message(node, markdown=markdown))
        for reply in forest.children(node.id):
            _add(child, reply)

    for root in forest.root_nodes():
        _add(tree, root)
    return tree


def render_thread_table(threads: Sequence[Thread]) -> Table:
    """Table of threads for listings."""
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("ID", style="dim", width=6)
    table.add_column("Title", style="cyan")
    table.add_column("Created", style="green")
    table.add_column("Context", width=8)

    for thread in threads:
        has_context = bool(thread.system_prompt and CONTEXT_OPEN_MARKER in thread.system_prompt)
        table.add_row(
            str(thread.id),
            thread.title,
            thread.created_at.strftime("%Y-%m-%d %H:%M"),
            "yes" if has_context else "",
        )
    return table
