"""WebSearch model capability: Gemini generateContent with Google Search grounding.

The server only needs two operations from a provider:

    client.start_conversation(web_search=True) -> conversation
    conversation.send_message(text) -> ModelResponse

GeminiClient implements them over the REST API.  The endpoint is stateless,
so each GeminiConversation keeps the running ``contents`` history and resends
it with every turn.  Tests substitute any object with the same two methods.
"""

from __future__ import annotations

import copy
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

import config as config_mod
from config import Config, require_api_key
from errors import UpstreamError, UpstreamTimeoutError


@dataclass
class ModelResponse:
    """Text and optional grounding metadata from the first candidate."""
    text: str
    grounding_metadata: Optional[Dict[str, Any]] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)


def to_gemini_payload(
    contents: List[Dict[str, Any]],
    generation_config: Dict[str, Any],
    web_search: bool = True,
) -> Dict[str, Any]:
    """Assemble a generateContent request body."""
    payload: Dict[str, Any] = {
        "contents": contents,
        "generationConfig": dict(generation_config),
    }
    if web_search:
        payload["tools"] = [{"google_search": {}}]
    return payload


def parse_gemini_response(data: Any) -> ModelResponse:
    """Extract reply text and grounding metadata from a generateContent body."""
    if not isinstance(data, dict):
        raise UpstreamError("Unexpected response body from Gemini")
    candidates = data.get("candidates") or []
    if not candidates:
        block_reason = (data.get("promptFeedback") or {}).get("blockReason")
        if block_reason:
            raise UpstreamError(f"Gemini blocked the prompt: {block_reason}")
        raise UpstreamError("No response from Gemini")

    candidate = candidates[0] if isinstance(candidates[0], dict) else {}
    parts = (candidate.get("content") or {}).get("parts") or []
    text_parts = [p.get("text", "") for p in parts if isinstance(p, dict) and "text" in p]
    if not text_parts:
        reason = candidate.get("finishReason", "unknown")
        raise UpstreamError(f"Gemini returned no text (finishReason: {reason})")

    grounding = candidate.get("groundingMetadata")
    return ModelResponse(
        text="".join(text_parts),
        grounding_metadata=grounding if isinstance(grounding, dict) else None,
        raw=data,
    )


class GeminiConversation:
    """One multi-turn exchange; history grows only on successful turns."""

    def __init__(self, client: "GeminiClient", web_search: bool = True):
        self._client = client
        self.web_search = web_search
        self.history: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def send_message(self, text: str) -> ModelResponse:
        with self._lock:
            user_turn = {"role": "user", "parts": [{"text": text}]}
            contents = copy.deepcopy(self.history) + [user_turn]
            response = self._client.generate(contents, web_search=self.web_search)
            self.history.append(user_turn)
            self.history.append({"role": "model", "parts": [{"text": response.text}]})
            return response


class GeminiClient:
    """Thin requests-based client for the Gemini REST API."""

    def __init__(self, cfg: Config, session: requests.Session | None = None):
        require_api_key(cfg)
        self.cfg = cfg
        self._http = session or requests.Session()

    @property
    def generation_config(self) -> Dict[str, Any]:
        return {
            "temperature": self.cfg.temperature,
            "topP": self.cfg.top_p,
            "topK": self.cfg.top_k,
            "maxOutputTokens": self.cfg.max_output_tokens,
        }

    @property
    def endpoint(self) -> str:
        return f"{self.cfg.base_url}/{self.cfg.model}:generateContent"

    def start_conversation(self, web_search: bool = True) -> GeminiConversation:
        return GeminiConversation(self, web_search=web_search)

    def generate(self, contents: List[Dict[str, Any]], web_search: bool = True) -> ModelResponse:
        """POST one generateContent request and parse the reply."""
        payload = to_gemini_payload(contents, self.generation_config, web_search=web_search)

        if config_mod.DEBUG_MODE:
            print(f"[DEBUG] Gemini → {self.endpoint}")
            print(f"[DEBUG] Gemini contents ({len(contents)}):")
            for i, c in enumerate(contents):
                part_text = c.get("parts", [{}])[0].get("text", "")
                print(f"  [{i}] {c.get('role', '?')}: {part_text[:200]}{'...' if len(part_text) > 200 else ''}")

        headers = {"Content-Type": "application/json", "x-goog-api-key": self.cfg.google_api_key}
        try:
            resp = self._http.post(self.endpoint, json=payload, headers=headers,
                                   timeout=self.cfg.timeout_s)
        except requests.Timeout as exc:
            raise UpstreamTimeoutError(
                f"Gemini did not respond within {self.cfg.timeout_s:g}s"
            ) from exc
        except requests.RequestException as exc:
            raise UpstreamError(str(exc)) from exc

        if resp.status_code >= 400:
            raise UpstreamError(f"[Error from Gemini: HTTP {resp.status_code}] {resp.text[:500]}")
        try:
            data = resp.json()
        except ValueError as exc:
            raise UpstreamError(f"Invalid JSON from Gemini: {exc}") from exc

        result = parse_gemini_response(data)
        if config_mod.DEBUG_MODE:
            print(f"[DEBUG] ← Gemini ({len(result.text)} chars): {result.text[:120]}...")
        return result
