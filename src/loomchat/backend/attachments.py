"""Attachment handling for outgoing user messages.

PDF attachments are not sent to the model as files; their text is
extracted with pypdf and appended to the message content.
"""

import base64
import io
import logging
from collections.abc import Sequence

from pypdf import PdfReader

logger = logging.getLogger(__name__)


def strip_data_url(encoded: str) -> str:
    """Drop a `data:<mime>;base64,` prefix if present."""
    _, sep, rest = encoded.partition(",")
    return rest if sep else encoded


def extract_pdf_text(data: bytes) -> str:
    """Text of every non-empty page, in page order.

    Raises:
        ValueError: If the bytes are not a readable PDF
    """
    try:
        reader = PdfReader(io.BytesIO(data))
        pages = [page.extract_text() or "" for page in reader.pages]
    except Exception as e:
        raise ValueError(f"Invalid PDF file: {e}") from e
    return "\n\n".join(text for text in pages if text.strip())


def append_pdf_attachments(content: str, pdfs: Sequence[str] | None) -> str:
    """Append the extracted text of base64-encoded PDFs to a message."""
    if not pdfs:
        return content

    for index, encoded in enumerate(pdfs, 1):
        try:
            data = base64.b64decode(strip_data_url(encoded), validate=True)
        except ValueError as e:
            logger.warning("Skipping PDF attachment %d: not valid base64 (%s)", index, e)
            continue

        try:
            text = extract_pdf_text(data)
        except ValueError as e:
            logger.warning("Failed to extract PDF text from attachment %d: %s", index, e)
            content += f"\n\n[System Error: Failed to extract text from PDF Attachment {index}]"
            continue

        content += (
            f"\n\n--- PDF Attachment {index} Content ---\n{text}\n"
            "-----------------------------------\n"
        )
    return content
