"""Backend operations consumed by the presentation layer."""

from .attachments import append_pdf_attachments, extract_pdf_text
from .service import ChatBackend

__all__ = [
    "ChatBackend",
    "append_pdf_attachments",
    "extract_pdf_text",
]
