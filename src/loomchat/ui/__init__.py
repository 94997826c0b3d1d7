"""Terminal rendering for loomchat.

- rendering.py: Rich layout of reply forests and thread listings
"""

from .rendering import render_forest, render_message, render_thread_table

__all__ = [
    "render_forest",
    "render_message",
    "render_thread_table",
]
