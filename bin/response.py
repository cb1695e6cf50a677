"""WebSearch response pipeline: search and follow-up turns.

  - process_search: start a grounded conversation, send the first query,
    register the conversation in the session store
  - process_follow_up: continue a stored conversation
  - build_payload: model reply → {text, html, sources}

These functions raise errors.WebSearchError subclasses; the Flask routes in
websearch.py translate them into HTTP responses.
"""

from __future__ import annotations

from typing import Any, Dict

import config as config_mod
from errors import NotFoundError, UpstreamError, ValidationError
from formatting import format_response_html
from sessions import SessionStore
from sources import extract_sources, sources_to_dicts


def build_payload(response: Any) -> Dict[str, Any]:
    """Format a ModelResponse-like object into the JSON body fields."""
    text = response.text or ""
    html = format_response_html(text)
    sources = extract_sources(getattr(response, "grounding_metadata", None))
    if config_mod.DEBUG_MODE:
        print(f"[DEBUG] Formatted response: text={len(text)} chars, "
              f"html={len(html)} chars, sources={len(sources)}")
    return {
        "text": text,
        "html": html,
        "sources": sources_to_dicts(sources),
    }


def _send(conversation: Any, query: str) -> Any:
    """Send one message, wrapping unexpected provider failures."""
    try:
        return conversation.send_message(query)
    except UpstreamError:
        raise
    except Exception as exc:
        raise UpstreamError(str(exc)) from exc


def process_search(client: Any, store: SessionStore, query: str | None) -> Dict[str, Any]:
    """Run a new search; returns {text, html, sources, sessionId}."""
    query = (query or "").strip()
    if not query:
        raise ValidationError("Query parameter 'q' is required")

    print(f"[WebSearch] Search: query={query[:80]!r}")
    conversation = client.start_conversation(web_search=True)
    response = _send(conversation, query)
    payload = build_payload(response)

    # Registered only once the first turn succeeded.
    session_id, _ = store.create(conversation)
    payload["sessionId"] = session_id
    print(f"[WebSearch] Search: session={session_id}, sources={len(payload['sources'])}")
    return payload


def process_follow_up(store: SessionStore, body: Any) -> Dict[str, Any]:
    """Continue an existing session; returns the same shape as process_search."""
    body = body if isinstance(body, dict) else {}
    session_id = body.get("sessionId")
    query = body.get("query")
    session_id = str(session_id).strip() if session_id is not None else ""
    query = query.strip() if isinstance(query, str) else ""
    if not session_id or not query:
        raise ValidationError("Both 'sessionId' and 'query' are required")

    conversation = store.get(session_id)
    if conversation is None:
        raise NotFoundError("Chat session not found")

    print(f"[WebSearch] Follow-up: session={session_id}, query={query[:80]!r}")
    response = _send(conversation, query)
    payload = build_payload(response)
    payload["sessionId"] = session_id
    return payload
