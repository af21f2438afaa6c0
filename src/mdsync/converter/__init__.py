"""Markdown <-> Word conversion.

:class:`DocumentConverter` is the narrow, one-direction-at-a-time contract
the sync engine depends on.  Both directions are deterministic for a given
input; neither is the inverse of the other, so a round trip may lose
formatting.
"""

from __future__ import annotations

from pathlib import Path

from mdsync.converter.docx_to_markdown import DocxToMarkdownConverter
from mdsync.converter.markdown_to_docx import MarkdownToDocxConverter

TEXT_EXTENSIONS = (".md", ".markdown")
RENDERED_EXTENSIONS = (".docx",)
TEXT_EXTENSION = ".md"
RENDERED_EXTENSION = ".docx"


class DocumentConverter:
    """Facade over the two single-direction converters."""

    def __init__(self) -> None:
        self._to_docx = MarkdownToDocxConverter()
        self._to_markdown = DocxToMarkdownConverter()

    def to_rendered(self, text: str) -> bytes:
        """Render Markdown *text* as ``.docx`` bytes."""
        return self._to_docx.convert(text)

    def to_text(self, data: bytes) -> str:
        """Read ``.docx`` bytes back into Markdown."""
        return self._to_markdown.convert(data)


def is_text_path(path: str | Path) -> bool:
    return Path(path).suffix.lower() in TEXT_EXTENSIONS


def is_rendered_path(path: str | Path) -> bool:
    return Path(path).suffix.lower() in RENDERED_EXTENSIONS


def derive_rendered_path(text_path: str | Path) -> Path:
    """Same directory and stem as *text_path*, with the ``.docx`` extension."""
    return Path(text_path).with_suffix(RENDERED_EXTENSION)


def derive_text_path(rendered_path: str | Path) -> Path:
    """Same directory and stem as *rendered_path*, with the ``.md`` extension."""
    return Path(rendered_path).with_suffix(TEXT_EXTENSION)


__all__ = [
    "DocumentConverter",
    "DocxToMarkdownConverter",
    "MarkdownToDocxConverter",
    "RENDERED_EXTENSION",
    "TEXT_EXTENSION",
    "derive_rendered_path",
    "derive_text_path",
    "is_rendered_path",
    "is_text_path",
]
