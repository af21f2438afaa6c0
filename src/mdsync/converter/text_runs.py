"""Conversion between Markdown inline text and Word run descriptions.

A Word paragraph is a sequence of runs, each carrying a piece of text and
character formatting (bold, italic, strike-through, monospace) and optionally
sitting inside a hyperlink.  Both converters describe that sequence with
:class:`TextRun` so the inline rules live in one place.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace

# Fonts treated as "inline code" when reading a document back.
MONOSPACE_FONTS = frozenset(
    {"Courier New", "Consolas", "Courier", "Menlo", "Monaco", "Source Code Pro"}
)
CODE_FONT = "Courier New"


@dataclass
class TextRun:
    """One formatted span of paragraph text."""

    text: str
    bold: bool = False
    italic: bool = False
    strike: bool = False
    code: bool = False
    link: str | None = None


# ---------------------------------------------------------------------------
# Runs -> Markdown
# ---------------------------------------------------------------------------


def runs_to_markdown(runs: list[TextRun]) -> str:
    """Render *runs* as Markdown inline text.

    Adjacent runs that share a hyperlink are wrapped in a single link so a
    link whose text was split across several runs comes out as one
    ``[text](url)``.
    """
    parts: list[str] = []
    idx = 0
    while idx < len(runs):
        run = runs[idx]
        if run.link:
            group: list[str] = []
            url = run.link
            while idx < len(runs) and runs[idx].link == url:
                group.append(_decorate(runs[idx]))
                idx += 1
            label = "".join(group)
            if label:
                parts.append(f"[{label}]({url})")
            continue
        parts.append(_decorate(run))
        idx += 1
    return "".join(parts)


def _decorate(run: TextRun) -> str:
    content = run.text
    if not content:
        return ""
    # Inline code cannot carry nested emphasis.
    if run.code:
        return f"`{content}`"

    # Emphasis markers must hug the text, so keep surrounding spaces outside.
    stripped = content.strip()
    if not stripped:
        return content
    lead = content[: len(content) - len(content.lstrip())]
    trail = content[len(content.rstrip()) :]

    if run.bold and run.italic:
        stripped = f"***{stripped}***"
    elif run.bold:
        stripped = f"**{stripped}**"
    elif run.italic:
        stripped = f"*{stripped}*"
    if run.strike:
        stripped = f"~~{stripped}~~"
    return f"{lead}{stripped}{trail}"


# ---------------------------------------------------------------------------
# Markdown -> Runs
# ---------------------------------------------------------------------------

# Longer markers first so ``***x***`` wins over ``**x**`` and ``*x*``.
_INLINE_PATTERN = re.compile(
    r"(?P<bold_italic>\*\*\*(?P<bi_text>.+?)\*\*\*)"
    r"|(?P<bold>\*\*(?P<b_text>.+?)\*\*)"
    r"|(?P<italic>\*(?P<i_text>.+?)\*)"
    r"|(?P<underscore_italic>(?<![\w_])_(?P<u_text>[^_]+?)_(?![\w_]))"
    r"|(?P<strike>~~(?P<s_text>.+?)~~)"
    r"|(?P<code>`(?P<c_text>[^`]+?)`)"
    r"|(?P<link>\[(?P<l_text>[^\]]*?)\]\((?P<l_url>[^)\s]+?)\))"
)


def parse_inline_markdown(text: str) -> list[TextRun]:
    """Split Markdown inline *text* into formatted runs.

    Handles bold, italic, bold+italic, strike-through, inline code and
    links, with nesting resolved by recursing into the matched span.
    """
    if not text:
        return []

    runs: list[TextRun] = []
    last_end = 0
    for m in _INLINE_PATTERN.finditer(text):
        if m.start() > last_end:
            runs.append(TextRun(text[last_end : m.start()]))

        if m.group("bold_italic"):
            runs.extend(_styled(m.group("bi_text"), bold=True, italic=True))
        elif m.group("bold"):
            runs.extend(_styled(m.group("b_text"), bold=True))
        elif m.group("italic"):
            runs.extend(_styled(m.group("i_text"), italic=True))
        elif m.group("underscore_italic"):
            runs.extend(_styled(m.group("u_text"), italic=True))
        elif m.group("strike"):
            runs.extend(_styled(m.group("s_text"), strike=True))
        elif m.group("code"):
            runs.append(TextRun(m.group("c_text"), code=True))
        elif m.group("link"):
            runs.extend(_styled(m.group("l_text"), link=m.group("l_url")))

        last_end = m.end()

    if last_end < len(text):
        runs.append(TextRun(text[last_end:]))
    return runs


def _styled(
    inner: str,
    *,
    bold: bool = False,
    italic: bool = False,
    strike: bool = False,
    link: str | None = None,
) -> list[TextRun]:
    """Parse *inner* recursively and OR the given flags into every run."""
    children = parse_inline_markdown(inner) or [TextRun(inner)]
    return [
        replace(
            child,
            bold=child.bold or bold,
            italic=child.italic or italic,
            strike=child.strike or strike,
            link=link or child.link,
        )
        for child in children
    ]
