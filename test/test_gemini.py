#!/usr/bin/env python3
"""Unit tests for the Gemini REST client (payloads, parsing, errors, history).

No network: the requests session is a MagicMock.
"""

import copy
import os
import sys
import threading
import time
import unittest
from unittest.mock import MagicMock

import requests

# Add bin/ to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "bin"))

from config import Config
from errors import ConfigError, UpstreamError, UpstreamTimeoutError
from gemini import GeminiClient, parse_gemini_response, to_gemini_payload


def _reply(text, grounding=None):
    candidate = {"content": {"role": "model", "parts": [{"text": text}]}, "finishReason": "STOP"}
    if grounding is not None:
        candidate["groundingMetadata"] = grounding
    return {"candidates": [candidate]}


def _http_response(status=200, body=None, text=""):
    resp = MagicMock()
    resp.status_code = status
    resp.text = text
    resp.json.return_value = body
    return resp


class TestPayload(unittest.TestCase):

    def test_web_search_tool_included(self):
        payload = to_gemini_payload([{"role": "user", "parts": [{"text": "hi"}]}], {"temperature": 0.9})
        self.assertEqual(payload["tools"], [{"google_search": {}}])
        self.assertEqual(payload["generationConfig"], {"temperature": 0.9})

    def test_web_search_tool_omitted(self):
        payload = to_gemini_payload([], {}, web_search=False)
        self.assertNotIn("tools", payload)


class TestParseResponse(unittest.TestCase):

    def test_text_and_grounding(self):
        grounding = {"groundingChunks": [], "groundingSupports": []}
        result = parse_gemini_response(_reply("hello", grounding))
        self.assertEqual(result.text, "hello")
        self.assertEqual(result.grounding_metadata, grounding)

    def test_multiple_parts_are_joined(self):
        data = {"candidates": [{"content": {"parts": [{"text": "a"}, {"text": "b"}]}}]}
        self.assertEqual(parse_gemini_response(data).text, "ab")

    def test_no_grounding(self):
        self.assertIsNone(parse_gemini_response(_reply("x")).grounding_metadata)

    def test_no_candidates_raises(self):
        with self.assertRaises(UpstreamError):
            parse_gemini_response({"candidates": []})

    def test_blocked_prompt_raises_with_reason(self):
        with self.assertRaises(UpstreamError) as ctx:
            parse_gemini_response({"promptFeedback": {"blockReason": "SAFETY"}})
        self.assertIn("SAFETY", ctx.exception.message)

    def test_candidate_without_text_raises(self):
        data = {"candidates": [{"content": {"parts": []}, "finishReason": "MAX_TOKENS"}]}
        with self.assertRaises(UpstreamError) as ctx:
            parse_gemini_response(data)
        self.assertIn("MAX_TOKENS", ctx.exception.message)


class TestGeminiClient(unittest.TestCase):

    def setUp(self):
        self.cfg = Config(google_api_key="test-key", model="gemini-test", timeout_s=7)
        self.http = MagicMock()
        self.client = GeminiClient(self.cfg, session=self.http)

    def test_requires_api_key(self):
        with self.assertRaises(ConfigError):
            GeminiClient(Config())

    def test_request_shape(self):
        self.http.post.return_value = _http_response(body=_reply("ok"))
        self.client.start_conversation().send_message("weather?")

        args, kwargs = self.http.post.call_args
        self.assertEqual(
            args[0],
            "https://generativelanguage.googleapis.com/v1beta/models/gemini-test:generateContent",
        )
        self.assertEqual(kwargs["headers"]["x-goog-api-key"], "test-key")
        self.assertEqual(kwargs["timeout"], 7)
        payload = kwargs["json"]
        self.assertEqual(payload["contents"], [{"role": "user", "parts": [{"text": "weather?"}]}])
        self.assertEqual(payload["tools"], [{"google_search": {}}])
        self.assertEqual(payload["generationConfig"], {
            "temperature": 0.9, "topP": 1.0, "topK": 1, "maxOutputTokens": 2048,
        })

    def test_history_is_resent_on_follow_up(self):
        self.http.post.side_effect = [
            _http_response(body=_reply("first answer")),
            _http_response(body=_reply("second answer")),
        ]
        conversation = self.client.start_conversation()
        conversation.send_message("q1")
        result = conversation.send_message("q2")

        self.assertEqual(result.text, "second answer")
        contents = self.http.post.call_args_list[1][1]["json"]["contents"]
        self.assertEqual([c["role"] for c in contents], ["user", "model", "user"])
        self.assertEqual(contents[1]["parts"][0]["text"], "first answer")
        self.assertEqual(len(conversation.history), 4)

    def test_failed_turn_does_not_extend_history(self):
        self.http.post.return_value = _http_response(status=429, text="quota exceeded")
        conversation = self.client.start_conversation()
        with self.assertRaises(UpstreamError) as ctx:
            conversation.send_message("q1")
        self.assertIn("HTTP 429", ctx.exception.message)
        self.assertIn("quota exceeded", ctx.exception.message)
        self.assertEqual(conversation.history, [])

    def test_timeout_maps_to_timeout_error(self):
        self.http.post.side_effect = requests.Timeout("read timed out")
        with self.assertRaises(UpstreamTimeoutError) as ctx:
            self.client.start_conversation().send_message("q")
        self.assertEqual(ctx.exception.status_code, 504)

    def test_connection_error_maps_to_upstream_error(self):
        self.http.post.side_effect = requests.ConnectionError("connection refused")
        with self.assertRaises(UpstreamError) as ctx:
            self.client.start_conversation().send_message("q")
        self.assertIn("connection refused", ctx.exception.message)
        self.assertNotIsInstance(ctx.exception, UpstreamTimeoutError)

    def test_invalid_json_maps_to_upstream_error(self):
        resp = _http_response()
        resp.json.side_effect = ValueError("Expecting value")
        self.http.post.return_value = resp
        with self.assertRaises(UpstreamError):
            self.client.start_conversation().send_message("q")


class TestConversationSerialization(unittest.TestCase):
    """Concurrent sends on one conversation run one after the other."""

    def test_second_send_waits_for_first_exchange(self):
        http = MagicMock()
        client = GeminiClient(Config(google_api_key="test-key"), session=http)
        conversation = client.start_conversation()

        sent_contents = []
        first_entered = threading.Event()
        release_first = threading.Event()

        def slow_post(url, json=None, headers=None, timeout=None):
            sent_contents.append(copy.deepcopy(json["contents"]))
            call_number = len(sent_contents)
            if call_number == 1:
                first_entered.set()
                release_first.wait(5)
            return _http_response(body=_reply(f"answer {call_number}"))

        http.post.side_effect = slow_post

        first = threading.Thread(target=conversation.send_message, args=("q1",))
        second = threading.Thread(target=conversation.send_message, args=("q2",))
        first.start()
        self.assertTrue(first_entered.wait(5))
        second.start()
        time.sleep(0.1)
        # second request must not reach the network while the first is in flight
        self.assertEqual(len(sent_contents), 1)
        release_first.set()
        first.join(5)
        second.join(5)

        self.assertEqual(len(sent_contents), 2)
        self.assertEqual(
            [(c["role"], c["parts"][0]["text"]) for c in sent_contents[1]],
            [("user", "q1"), ("model", "answer 1"), ("user", "q2")],
        )
        self.assertEqual(
            [(c["role"], c["parts"][0]["text"]) for c in conversation.history],
            [("user", "q1"), ("model", "answer 1"), ("user", "q2"), ("model", "answer 2")],
        )


if __name__ == "__main__":
    unittest.main()
