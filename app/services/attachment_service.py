"""Turns uploaded files and pasted links into session attachments."""

import re
import unicodedata
from typing import Optional

import fitz  # PyMuPDF

from app.core.logging import logger
from app.schemas import Attachment, new_id

UNSUPPORTED_CONTENT = "(Unsupported file type)"
UNREADABLE_PDF_CONTENT = "(PDF attached - no extractable text)"


class AttachmentService:
    """Reads text and PDF uploads into text attachments."""

    def extract_text_from_pdf(self, pdf_content: bytes) -> str:
        """Extract all text from a PDF file."""
        text_parts = []

        with fitz.open(stream=pdf_content, filetype="pdf") as doc:
            for page in doc:
                page_text = page.get_text()
                if page_text.strip():
                    text_parts.append(page_text)

        return "\n\n".join(text_parts)

    def _normalize_unicode(self, text: str) -> str:
        text = unicodedata.normalize("NFKC", text)
        replacements = {
            "\u00a0": " ",  # Non-breaking space
            "\u200b": "",   # Zero-width space
            "\ufeff": "",   # BOM
            "\u2022": "-", "\u25cf": "-", "\u25aa": "-",
        }
        for old, new in replacements.items():
            text = text.replace(old, new)
        return text

    def _fix_hyphenated_words(self, text: str) -> str:
        """Rejoin words split by hyphens at line breaks."""
        return re.sub(r"(\w+)-\s*\n\s*(\w+)", r"\1\2", text)

    def _clean_whitespace(self, text: str) -> str:
        text = text.replace("\t", " ")
        text = re.sub(r" +", " ", text)
        text = "\n".join(line.strip() for line in text.split("\n"))
        text = re.sub(r"\n{3,}", "\n\n", text)
        return text.strip()

    def cleanup_text(self, text: str) -> str:
        """
        Light cleanup of extracted PDF text.

        Only the leading snippet of an attachment reaches the prompt, so this
        keeps the text readable without trying to restructure it.
        """
        text = self._normalize_unicode(text)
        text = self._fix_hyphenated_words(text)
        return self._clean_whitespace(text)

    def read_upload(
        self,
        filename: str,
        content_type: Optional[str],
        content: bytes,
    ) -> Attachment:
        """Build a text attachment from an uploaded file."""
        content_type = (content_type or "").lower()
        name = filename or "attachment"

        if content_type == "application/pdf" or name.lower().endswith(".pdf"):
            try:
                text = self.cleanup_text(self.extract_text_from_pdf(content))
            except (RuntimeError, ValueError) as e:
                logger.warning(f"Could not read PDF '{name}': {e}")
                text = ""
            logger.info(f"Attached PDF: {name} ({len(text)} chars)")
            return Attachment(id=new_id("att"), name=name, kind="text", content=text or UNREADABLE_PDF_CONTENT)

        if content_type.startswith("text/"):
            text = content.decode("utf-8", errors="replace")
            logger.info(f"Attached text file: {name} ({len(text)} chars)")
            return Attachment(id=new_id("att"), name=name, kind="text", content=text)

        logger.info(f"Attempted attach (unsupported type {content_type or 'unknown'}): {name}")
        return Attachment(id=new_id("att"), name=name, kind="text", content=UNSUPPORTED_CONTENT)

    def link(self, url: str, name: Optional[str] = None) -> Attachment:
        url = url.strip()
        return Attachment(id=new_id("att"), name=(name or url).strip(), kind="link", content=url)


# Singleton instance
attachment_service = AttachmentService()
