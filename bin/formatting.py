"""WebSearch response formatting: loosely structured model text to HTML.

Model replies arrive as plain prose with label-style lines ("Weather: ...")
and bullet glyphs.  The rewrites below coerce that into markdown, which
markdown-it-py then renders:

  1. CRLF → LF
  2. ``Label:`` at line start → ``## Label:``
  3. remaining line-start ``Label:`` (not followed by a digit) → ``### Label``
  4. ``•``/``●``/``○`` bullets → ``* ``
  5. paragraphs that are not headings or list items get a trailing newline
  6. render (CommonMark + tables/strikethrough/bare-URL links, newlines as ``<br>``)
"""

from __future__ import annotations

import re

from markdown_it import MarkdownIt


_SECTION_RE = re.compile(r"^([A-Za-z][A-Za-z\s]+):(\s*)", re.MULTILINE)
_SUBSECTION_RE = re.compile(r"^([A-Za-z][A-Za-z\s]+):(?!\d)", re.MULTILINE)
_BULLET_RE = re.compile(r"^[•●○]\s*", re.MULTILINE)

_PRESERVED_PREFIXES = ("#", "*", "-")


def _make_renderer() -> MarkdownIt:
    md = MarkdownIt("commonmark", {"breaks": True, "html": True, "linkify": True})
    md.enable(["table", "strikethrough", "linkify"])
    return md


_RENDERER = _make_renderer()


def normalize_markdown(text: str | None) -> str:
    """Apply the heading/bullet/paragraph rewrites and return markdown."""
    if not text:
        return ""
    processed = text.replace("\r\n", "\n")

    # Main sections keep their colon; sub-sections drop it.
    processed = _SECTION_RE.sub(r"## \1:\2", processed)
    processed = _SUBSECTION_RE.sub(r"### \1", processed)

    processed = _BULLET_RE.sub("* ", processed)

    paragraphs = [p for p in processed.split("\n\n") if p]
    formatted = []
    for p in paragraphs:
        if p.startswith(_PRESERVED_PREFIXES):
            formatted.append(p)
        else:
            formatted.append(f"{p}\n")
    return "\n\n".join(formatted)


def render_markdown(markdown: str) -> str:
    return _RENDERER.render(markdown)


def format_response_html(text: str | None) -> str:
    """Convert raw model output into an HTML fragment."""
    return render_markdown(normalize_markdown(text))
