#!/usr/bin/env python3
"""
Tests for the LLM transport layer.

The HTTP session and the OpenAI SDK are mocked; these tests check request
shape and the mapping of transport failures onto the translator errors.
"""
import os
import sys
import unittest
from unittest.mock import MagicMock, patch

import httpx
import openai
import requests

# Add parent directory to path for module import
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from xml_translator.errors import RateLimitError, TranslationTimeoutError, UpstreamError
from xml_translator.llm_provider import (
    DEFAULT_MODEL,
    LLMClient,
    LLMConfig,
    LLMProvider,
    resolve_model_name,
)

GEMINI_ANSWER = {"candidates": [{"content": {"parts": [{"text": "generated"}]}}]}


def _http_response(status_code, payload=None, text=""):
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    response.json.return_value = payload
    return response


@patch("xml_translator.llm_provider._get_session")
class TestGeminiTransport(unittest.TestCase):
    """Tests for the Gemini REST path."""

    def setUp(self):
        self.client = LLMClient(LLMConfig())

    def test_success(self, mock_get_session):
        session = mock_get_session.return_value
        session.post.return_value = _http_response(200, GEMINI_ANSWER)

        self.assertEqual(self.client.generate_text("prompt", "key-1", 45), "generated")

        args, kwargs = session.post.call_args
        self.assertIn(f"models/{DEFAULT_MODEL}:generateContent", args[0])
        self.assertEqual(kwargs["params"], {"key": "key-1"})
        self.assertEqual(kwargs["json"], {"contents": [{"parts": [{"text": "prompt"}]}]})
        self.assertEqual(kwargs["timeout"], 45)

    def test_rate_limit(self, mock_get_session):
        mock_get_session.return_value.post.return_value = _http_response(429, text="quota")
        with self.assertRaises(RateLimitError):
            self.client.generate_text("prompt", "key-1", 30)

    def test_error_body_is_truncated(self, mock_get_session):
        mock_get_session.return_value.post.return_value = _http_response(500, text="x" * 1000)
        with self.assertRaises(UpstreamError) as ctx:
            self.client.generate_text("prompt", "key-1", 30)
        message = str(ctx.exception)
        self.assertIn("500", message)
        self.assertIn("x" * 500, message)
        self.assertNotIn("x" * 501, message)

    def test_timeout(self, mock_get_session):
        mock_get_session.return_value.post.side_effect = requests.Timeout("read timed out")
        with self.assertRaises(TranslationTimeoutError) as ctx:
            self.client.generate_text("prompt", "key-1", 30)
        self.assertIsInstance(ctx.exception, TimeoutError)
        self.assertIn("batch size", str(ctx.exception))

    def test_connection_error(self, mock_get_session):
        mock_get_session.return_value.post.side_effect = requests.ConnectionError("refused")
        with self.assertRaises(UpstreamError):
            self.client.generate_text("prompt", "key-1", 30)

    def test_missing_candidates(self, mock_get_session):
        mock_get_session.return_value.post.return_value = _http_response(200, {}, text="{}")
        with self.assertRaises(UpstreamError):
            self.client.generate_text("prompt", "key-1", 30)


@patch("xml_translator.llm_provider.openai.OpenAI")
class TestOpenAITransport(unittest.TestCase):
    """Tests for the OpenAI-compatible path."""

    def _completion(self, content):
        response = MagicMock()
        response.choices = [MagicMock()]
        response.choices[0].message.content = content
        return response

    def test_success_without_sdk_retries(self, mock_openai):
        mock_openai.return_value.chat.completions.create.return_value = self._completion(" Hola ")
        client = LLMClient(LLMConfig(provider=LLMProvider.OPENAI, model="gpt-4o-mini"))

        self.assertEqual(client.generate_text("prompt", "sk-test", 60), "Hola")

        kwargs = mock_openai.call_args[1]
        self.assertEqual(kwargs["api_key"], "sk-test")
        self.assertEqual(kwargs["max_retries"], 0)
        self.assertEqual(kwargs["base_url"], "https://api.openai.com/v1")
        create_kwargs = mock_openai.return_value.chat.completions.create.call_args[1]
        self.assertEqual(create_kwargs["messages"], [{"role": "user", "content": "prompt"}])
        self.assertNotIn("extra_headers", create_kwargs)

    def test_openrouter_headers(self, mock_openai):
        mock_openai.return_value.chat.completions.create.return_value = self._completion("ok")
        config = LLMConfig(
            provider="openrouter",
            model="google/gemini-2.5-flash",
            site_url="https://example.com",
            site_name="Example",
        )
        LLMClient(config).generate_text("prompt", "or-key", 60)

        create_kwargs = mock_openai.return_value.chat.completions.create.call_args[1]
        self.assertEqual(
            create_kwargs["extra_headers"],
            {"HTTP-Referer": "https://example.com", "X-Title": "Example"},
        )

    def test_error_mapping(self, mock_openai):
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        cases = [
            (
                openai.RateLimitError(
                    "rate limited", response=httpx.Response(429, request=request), body=None
                ),
                RateLimitError,
            ),
            (openai.APITimeoutError(request=request), TranslationTimeoutError),
            (openai.APIConnectionError(request=request), UpstreamError),
            (
                openai.InternalServerError(
                    "boom", response=httpx.Response(500, request=request), body=None
                ),
                UpstreamError,
            ),
        ]
        client = LLMClient(LLMConfig(provider=LLMProvider.OPENAI, model="gpt-4o-mini"))
        for sdk_error, expected in cases:
            with self.subTest(error=type(sdk_error).__name__):
                mock_openai.return_value.chat.completions.create.side_effect = sdk_error
                with self.assertRaises(expected):
                    client.generate_text("prompt", "sk-test", 60)


class TestResolveModelName(unittest.TestCase):
    """Tests for the best-effort model lookup."""

    def test_no_url_uses_default(self):
        self.assertEqual(resolve_model_name(None), DEFAULT_MODEL)

    @patch("xml_translator.llm_provider.requests.get")
    def test_remote_model(self, mock_get):
        mock_get.return_value.json.return_value = {"model": "gemini-2.5-pro"}
        self.assertEqual(resolve_model_name("https://example.com/model.json"), "gemini-2.5-pro")

    @patch("xml_translator.llm_provider.requests.get")
    def test_failures_fall_back(self, mock_get):
        failures = [
            requests.ConnectionError("offline"),
            ValueError("not json"),
        ]
        for failure in failures:
            with self.subTest(failure=failure):
                mock_get.side_effect = failure
                self.assertEqual(
                    resolve_model_name("https://example.com/model.json", "fallback"), "fallback"
                )

        mock_get.side_effect = None
        mock_get.return_value.json.return_value = {"model": ""}
        self.assertEqual(resolve_model_name("https://example.com/model.json", "fallback"), "fallback")


if __name__ == "__main__":
    unittest.main()
