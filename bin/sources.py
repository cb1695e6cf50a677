"""WebSearch citation extraction from Gemini grounding metadata.

``groundingSupports`` name text segments of the reply and point at entries
of ``groundingChunks`` by index.  Walking supports in order and upserting
by url yields one Source per distinct url: the position is where the url was
first seen, the snippet is from the last support that cited it.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, List


@dataclass
class Source:
    """A single web citation shown beneath a response."""
    title: str  # Page title reported by the search tool.
    url: str  # Dedup key.
    snippet: str  # Response segment the page supports.


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def _web_source(chunks: list, index: Any) -> Dict[str, Any] | None:
    """Return the chunk's web mapping, or None for anything unusable."""
    if isinstance(index, bool) or not isinstance(index, int):
        return None
    if index < 0 or index >= len(chunks):
        return None
    chunk = chunks[index]
    if not isinstance(chunk, dict):
        return None
    web = chunk.get("web")
    if not isinstance(web, dict) or not web.get("uri"):
        return None
    return web


def extract_sources(metadata: Any) -> List[Source]:
    """Build the deduplicated, first-seen-ordered source list.

    Missing or malformed metadata produces an empty list rather than an
    error; individual bad supports or indices are skipped.
    """
    if not isinstance(metadata, dict):
        return []
    chunks = _as_list(metadata.get("groundingChunks"))
    supports = _as_list(metadata.get("groundingSupports"))
    if not chunks or not supports:
        return []

    by_url: Dict[str, Source] = {}
    for support in supports:
        if not isinstance(support, dict):
            continue
        segment = support.get("segment")
        snippet = segment.get("text", "") if isinstance(segment, dict) else ""
        for index in _as_list(support.get("groundingChunkIndices")):
            web = _web_source(chunks, index)
            if web is None:
                continue
            url = str(web["uri"])
            # reassignment keeps the first-seen position
            by_url[url] = Source(
                title=str(web.get("title") or url),
                url=url,
                snippet=str(snippet or ""),
            )
    return list(by_url.values())


def sources_to_dicts(sources: List[Source]) -> List[Dict[str, str]]:
    return [asdict(s) for s in sources]
