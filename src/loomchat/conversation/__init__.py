"""Conversation core: reply forests, stream reconciliation, context assembly.

Module structure (each module hides a design decision):
- models.py: arena representation of the reply forest
- tree.py: how a flat log becomes a forest
- thinking.py: how reasoning sections are marked up
- stream.py: how streamed deltas are applied and handed back to storage
- context.py: how context for a new thread is selected
- personas.py: base instruction templates
- session.py: explicit state driving all of the above
"""

from .context import ContextAssembler, ContextPolicy, assemble_context, render_transcript
from .models import MessageForest, MessageNode, StreamingSnapshot, StreamState
from .personas import DEFAULT_PERSONA_ID, PERSONAS, Persona, get_persona
from .session import ChatSession, PendingConfirmation
from .stream import StreamChannel, StreamDelta, StreamDone, StreamReconciler
from .thinking import ThinkingSplit, split_thinking
from .tree import build_message_tree, infer_reply_links

__all__ = [
    "ChatSession",
    "ContextAssembler",
    "ContextPolicy",
    "DEFAULT_PERSONA_ID",
    "MessageForest",
    "MessageNode",
    "PERSONAS",
    "PendingConfirmation",
    "Persona",
    "StreamChannel",
    "StreamDelta",
    "StreamDone",
    "StreamReconciler",
    "StreamState",
    "StreamingSnapshot",
    "ThinkingSplit",
    "assemble_context",
    "build_message_tree",
    "get_persona",
    "infer_reply_links",
    "render_transcript",
    "split_thinking",
]
