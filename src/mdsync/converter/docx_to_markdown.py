"""Read a Word (``.docx``) document back into Markdown.

Walks the document body in order (paragraphs and tables interleaved) and maps
paragraph styles to Markdown block syntax.  Documents edited in Word, WPS or
LibreOffice keep the styles the forward converter applied, so the common
structures survive a round trip; anything unrecognised degrades to a plain
paragraph.
"""

from __future__ import annotations

import io
import re
from typing import Any

from docx import Document
from docx.table import Table
from docx.text.hyperlink import Hyperlink
from docx.text.paragraph import Paragraph

from mdsync.converter.markdown_to_docx import CODE_STYLE, HORIZONTAL_RULE
from mdsync.converter.text_runs import MONOSPACE_FONTS, TextRun, runs_to_markdown

_HEADING_STYLE = re.compile(r"^Heading (\d)$")
_LIST_LEVEL = re.compile(r"(\d)$")
_CODE_STYLES = frozenset({"Code", "HTML Preformatted", "Macro Text", "Source Code"})
_QUOTE_STYLES = frozenset({"Quote", "Intense Quote"})


class DocxToMarkdownConverter:
    """Stateless converter: docx bytes -> Markdown text."""

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def convert(self, data: bytes) -> str:
        """Convert a serialised ``.docx`` package into a Markdown string.

        Raises whatever ``python-docx`` raises for a corrupt or non-docx
        payload (typically ``zipfile.BadZipFile`` or ``KeyError``).
        """
        document = Document(io.BytesIO(data))
        blocks: list[tuple[str, list[str]]] = []
        for item in document.iter_inner_content():
            if isinstance(item, Table):
                self._render_table(item, blocks)
            else:
                self._render_paragraph(item, blocks)
        text = _join_blocks(blocks).strip()
        return text + "\n" if text else ""

    # ------------------------------------------------------------------
    # Paragraphs
    # ------------------------------------------------------------------

    def _render_paragraph(
        self, paragraph: Paragraph, blocks: list[tuple[str, list[str]]]
    ) -> None:
        style = _style_name(paragraph)

        if _is_code(paragraph, style):
            code_lines = paragraph.text.split("\n")
            if blocks and blocks[-1][0] == "code":
                blocks[-1][1].extend(code_lines)
            else:
                blocks.append(("code", code_lines))
            return

        text = runs_to_markdown(paragraph_runs(paragraph)).strip()
        if not text:
            return

        if style == "Title":
            blocks.append(("heading", [f"# {text}"]))
            return
        heading = _HEADING_STYLE.match(style)
        if heading:
            level = min(int(heading.group(1)), 6)
            blocks.append(("heading", [f"{'#' * level} {text}"]))
            return

        list_marker = _list_marker(paragraph, style)
        if list_marker is not None:
            kind = "list-ordered" if "1." in list_marker else "list"
            # Nested items stay in the enclosing list.
            if list_marker.startswith(" ") and blocks and blocks[-1][0].startswith("list"):
                kind = blocks[-1][0]
            blocks.append((kind, [f"{list_marker}{text}"]))
            return

        if style in _QUOTE_STYLES:
            if blocks and blocks[-1][0] == "quote":
                blocks[-1][1].extend([">", f"> {text}"])
            else:
                blocks.append(("quote", [f"> {text}"]))
            return

        if text == HORIZONTAL_RULE:
            blocks.append(("rule", [HORIZONTAL_RULE]))
            return

        blocks.append(("paragraph", [text]))

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def _render_table(self, table: Table, blocks: list[tuple[str, list[str]]]) -> None:
        rows: list[list[str]] = []
        for r, row in enumerate(table.rows):
            cells: list[str] = []
            for cell in row.cells:
                parts = []
                for paragraph in cell.paragraphs:
                    runs = paragraph_runs(paragraph)
                    if r == 0:
                        # Header cells are bold by construction.
                        for run in runs:
                            run.bold = False
                    parts.append(runs_to_markdown(runs).strip())
                cells.append(" ".join(p for p in parts if p).replace("|", "\\|"))
            rows.append(cells)
        if not rows:
            return

        col_count = max(len(r) for r in rows)
        lines = []
        for i, row in enumerate(rows):
            padded = row + [""] * (col_count - len(row))
            lines.append("| " + " | ".join(padded) + " |")
            if i == 0:
                lines.append("| " + " | ".join("---" for _ in range(col_count)) + " |")
        blocks.append(("table", lines))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def paragraph_runs(paragraph: Paragraph) -> list[TextRun]:
    """Describe the runs of *paragraph*, including those inside hyperlinks."""
    runs: list[TextRun] = []
    for item in paragraph.iter_inner_content():
        if isinstance(item, Hyperlink):
            url = item.url or None
            runs.extend(_describe_run(r, link=url) for r in item.runs)
        else:
            runs.append(_describe_run(item))
    return runs


def _describe_run(run: Any, link: str | None = None) -> TextRun:
    return TextRun(
        text=run.text,
        bold=bool(run.bold),
        italic=bool(run.italic),
        strike=bool(run.font.strike),
        code=run.font.name in MONOSPACE_FONTS,
        link=link,
    )


def _style_name(paragraph: Paragraph) -> str:
    style = paragraph.style
    return (style.name or "") if style is not None else ""


def _is_code(paragraph: Paragraph, style: str) -> bool:
    if style in _CODE_STYLES:
        return True
    runs = [r for r in paragraph.runs if r.text]
    if not runs or paragraph.hyperlinks:
        return False
    # Monospace-only paragraphs are code blocks when written with the code
    # style or spanning several lines; otherwise they are inline code.
    return all(r.font.name in MONOSPACE_FONTS for r in runs) and (
        style == CODE_STYLE or "\n" in paragraph.text
    )


def _list_marker(paragraph: Paragraph, style: str) -> str | None:
    if style.startswith("List Bullet") or style.startswith("List Number"):
        match = _LIST_LEVEL.search(style)
        level = int(match.group(1)) - 1 if match else 0
        marker = "1. " if style.startswith("List Number") else "- "
        return "  " * level + marker

    # Lists authored in Word usually carry numbering properties instead.
    p_pr = paragraph._p.pPr
    num_pr = p_pr.numPr if p_pr is not None else None
    if num_pr is None:
        return None
    ilvl = num_pr.ilvl.val if num_pr.ilvl is not None else 0
    return "  " * ilvl + "- "


def _join_blocks(blocks: list[tuple[str, list[str]]]) -> str:
    lines: list[str] = []
    previous = ""
    for kind, block_lines in blocks:
        if lines and not (kind.startswith("list") and kind == previous):
            lines.append("")
        if kind == "code":
            lines.append("```")
            lines.extend(block_lines)
            lines.append("```")
        else:
            lines.extend(block_lines)
        previous = kind
    return "\n".join(lines)
