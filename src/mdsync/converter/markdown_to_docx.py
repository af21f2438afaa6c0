"""Render a Markdown string as a Word (``.docx``) document.

Uses ``markdown-it-py`` to tokenise the Markdown source, then walks the token
stream and appends paragraphs and tables to a ``python-docx`` document.  The
mapping uses only styles present in python-docx's default template:

=====================  =============================================
Markdown               Word
=====================  =============================================
``#`` .. ``######``    ``Heading 1`` .. ``Heading 6``
paragraph              ``Normal``
``-`` / ``1.`` lists   ``List Bullet`` / ``List Number`` (+ `` 2``/`` 3``)
fenced / indented code ``No Spacing`` paragraph in a monospace font
``>`` quote            ``Quote``
``---``                ``Normal`` paragraph containing ``---``
table                  table with ``Table Grid`` style
=====================  =============================================
"""

from __future__ import annotations

import io
from typing import Any

from docx import Document
from docx.opc.constants import RELATIONSHIP_TYPE as RT
from docx.oxml import OxmlElement
from docx.oxml.ns import qn
from docx.shared import RGBColor
from docx.text.paragraph import Paragraph
from markdown_it import MarkdownIt

from mdsync.converter.text_runs import CODE_FONT, TextRun, parse_inline_markdown

HORIZONTAL_RULE = "---"
CODE_STYLE = "No Spacing"
_MAX_LIST_LEVEL = 3
_LINK_COLOR = RGBColor(0x05, 0x63, 0xC1)


class MarkdownToDocxConverter:
    """Stateless converter: Markdown text -> docx bytes."""

    def __init__(self) -> None:
        self._md = MarkdownIt("commonmark", {"typographer": False})
        self._md.enable(["table", "strikethrough"])

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def convert(self, markdown_text: str) -> bytes:
        """Parse *markdown_text* and return the serialised ``.docx`` package."""
        document = Document()
        tokens = self._md.parse(markdown_text)
        idx = 0
        while idx < len(tokens):
            idx = self._consume_token(tokens, idx, document)
        buffer = io.BytesIO()
        document.save(buffer)
        return buffer.getvalue()

    # ------------------------------------------------------------------
    # Token consumers
    # ------------------------------------------------------------------

    def _consume_token(
        self,
        tokens: list[Any],
        idx: int,
        document: Any,
        *,
        quote: bool = False,
    ) -> int:
        """Dispatch on the current token type and return the next index."""
        tok = tokens[idx]

        if tok.type == "heading_open":
            return self._consume_heading(tokens, idx, document)
        if tok.type == "paragraph_open":
            style = "Quote" if quote else None
            return self._consume_paragraph(tokens, idx, document, style=style)
        if tok.type in ("bullet_list_open", "ordered_list_open"):
            return self._consume_list(tokens, idx, document, level=1)
        if tok.type in ("fence", "code_block"):
            return self._consume_code(tokens, idx, document)
        if tok.type == "blockquote_open":
            return self._consume_blockquote(tokens, idx, document)
        if tok.type == "hr":
            document.add_paragraph(HORIZONTAL_RULE)
            return idx + 1
        if tok.type == "html_block":
            content = (tok.content or "").strip()
            if content:
                document.add_paragraph(content)
            return idx + 1
        if tok.type == "table_open":
            return self._consume_table(tokens, idx, document)

        # Close tags and anything we do not render.
        return idx + 1

    def _consume_heading(self, tokens: list[Any], idx: int, document: Any) -> int:
        level = int(tokens[idx].tag.lstrip("h"))  # "h2" -> 2
        inline_tok = tokens[idx + 1]
        paragraph = document.add_paragraph(style=f"Heading {level}")
        add_runs(paragraph, parse_inline_markdown(inline_tok.content or ""))
        return idx + 3  # open, inline, close

    def _consume_paragraph(
        self,
        tokens: list[Any],
        idx: int,
        document: Any,
        *,
        style: str | None = None,
    ) -> int:
        inline_tok = tokens[idx + 1]
        paragraph = document.add_paragraph(style=style)
        add_runs(paragraph, parse_inline_markdown(_soft_breaks(inline_tok)))
        return idx + 3

    def _consume_list(
        self,
        tokens: list[Any],
        idx: int,
        document: Any,
        *,
        level: int,
    ) -> int:
        ordered = tokens[idx].type == "ordered_list_open"
        close_type = "ordered_list_close" if ordered else "bullet_list_close"
        base = "List Number" if ordered else "List Bullet"
        style = base if level == 1 else f"{base} {min(level, _MAX_LIST_LEVEL)}"

        idx += 1
        while idx < len(tokens) and tokens[idx].type != close_type:
            tok = tokens[idx]
            if tok.type == "paragraph_open":
                # Tight and loose items both carry their text in a paragraph.
                idx = self._consume_paragraph(tokens, idx, document, style=style)
            elif tok.type in ("bullet_list_open", "ordered_list_open"):
                idx = self._consume_list(tokens, idx, document, level=level + 1)
            elif tok.type in ("fence", "code_block"):
                idx = self._consume_code(tokens, idx, document)
            else:
                idx += 1
        return idx + 1

    def _consume_code(self, tokens: list[Any], idx: int, document: Any) -> int:
        code = tokens[idx].content or ""
        if code.endswith("\n"):
            code = code[:-1]
        paragraph = document.add_paragraph(style=CODE_STYLE)
        run = paragraph.add_run(code)
        run.font.name = CODE_FONT
        return idx + 1

    def _consume_blockquote(self, tokens: list[Any], idx: int, document: Any) -> int:
        idx += 1
        while idx < len(tokens) and tokens[idx].type != "blockquote_close":
            idx = self._consume_token(tokens, idx, document, quote=True)
        return idx + 1

    def _consume_table(self, tokens: list[Any], idx: int, document: Any) -> int:
        rows: list[list[str]] = []
        current: list[str] = []
        idx += 1
        while idx < len(tokens) and tokens[idx].type != "table_close":
            tok = tokens[idx]
            if tok.type == "tr_open":
                current = []
            elif tok.type == "tr_close":
                rows.append(current)
            elif tok.type in ("th_open", "td_open"):
                current.append(tokens[idx + 1].content or "")
                idx += 3
                continue
            idx += 1
        idx += 1  # table_close

        if not rows:
            return idx

        col_count = max(len(r) for r in rows)
        table = document.add_table(rows=len(rows), cols=col_count)
        table.style = "Table Grid"
        for r, row in enumerate(rows):
            for c in range(col_count):
                text = row[c] if c < len(row) else ""
                paragraph = table.cell(r, c).paragraphs[0]
                runs = parse_inline_markdown(text)
                if r == 0:
                    for run in runs:
                        run.bold = True
                add_runs(paragraph, runs)
        return idx


# ---------------------------------------------------------------------------
# Run helpers
# ---------------------------------------------------------------------------


def add_runs(paragraph: Paragraph, runs: list[TextRun]) -> None:
    """Append *runs* to *paragraph*, creating hyperlinks where needed."""
    for spec in runs:
        if not spec.text:
            continue
        run = paragraph.add_run(spec.text)
        run.bold = spec.bold or None
        run.italic = spec.italic or None
        if spec.strike:
            run.font.strike = True
        if spec.code:
            run.font.name = CODE_FONT
        if spec.link:
            run.font.underline = True
            run.font.color.rgb = _LINK_COLOR
            _wrap_in_hyperlink(paragraph, run, spec.link)


def _wrap_in_hyperlink(paragraph: Paragraph, run: Any, url: str) -> None:
    """Move *run* into a new external ``w:hyperlink`` element pointing at *url*."""
    r_id = paragraph.part.relate_to(url, RT.HYPERLINK, is_external=True)
    hyperlink = OxmlElement("w:hyperlink")
    hyperlink.set(qn("r:id"), r_id)
    hyperlink.append(run._r)
    paragraph._p.append(hyperlink)


def _soft_breaks(inline_tok: Any) -> str:
    """Collapse soft line breaks inside a paragraph to spaces."""
    content = inline_tok.content or ""
    return " ".join(line.strip() for line in content.splitlines()) if content else ""
