#!/usr/bin/env python3
"""
LLM Provider Module

This module provides an abstraction layer for communicating with different
LLM providers (Gemini, OpenAI, OpenRouter) using a unified interface. It
handles provider-specific endpoints and maps every transport failure onto the
translator's error types.

The API key is passed with each call instead of living in the configuration,
so one client can serve a whole pool of rotating keys.
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

import openai
import requests

from .errors import RateLimitError, TranslationTimeoutError, UpstreamError

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"
GEMINI_ENDPOINT = (
    "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
)
MAX_ERROR_BODY = 500

_thread_local = threading.local()


def _get_session() -> requests.Session:
    """Return the calling thread's HTTP session, creating it on first use."""
    if not hasattr(_thread_local, "session"):
        _thread_local.session = requests.Session()
    return _thread_local.session


class LLMProvider(Enum):
    """Supported LLM providers."""

    GEMINI = "gemini"
    OPENAI = "openai"
    OPENROUTER = "openrouter"


@dataclass
class LLMConfig:
    """
    Configuration for LLM API access.

    Attributes:
        provider: The LLM provider to use
        model: Model identifier (e.g., "gemini-2.5-flash" or "gpt-4o-mini")
        site_url: Optional site URL for OpenRouter rankings
        site_name: Optional site name for OpenRouter rankings
        send_site_info: Whether to send site URL/name to OpenRouter (default: True)
    """

    provider: LLMProvider = LLMProvider.GEMINI
    model: str = DEFAULT_MODEL
    site_url: Optional[str] = None
    site_name: Optional[str] = None
    send_site_info: bool = True

    def __post_init__(self):
        """Validate configuration after initialization."""
        if isinstance(self.provider, str):
            self.provider = LLMProvider(self.provider.lower())

        if not self.model:
            raise ValueError("Model name is required")


class LLMClient:
    """
    Client for interacting with LLM APIs.

    Gemini is called through its REST endpoint with ``requests``; OpenAI and
    OpenRouter share the OpenAI Python SDK as both are API-compatible.
    """

    # Provider-specific base URLs
    BASE_URLS = {
        LLMProvider.OPENAI: "https://api.openai.com/v1",
        LLMProvider.OPENROUTER: "https://openrouter.ai/api/v1",
    }

    def __init__(self, config: LLMConfig):
        self.config = config
        logger.info(
            f"Initialized LLM client with provider={config.provider.value}, "
            f"model={config.model}"
        )

    def _get_extra_headers(self) -> Dict[str, str]:
        """
        Get provider-specific extra headers.

        For OpenRouter, includes HTTP-Referer and X-Title for rankings
        (only if send_site_info is True).
        """
        if (
            self.config.provider == LLMProvider.OPENROUTER
            and self.config.send_site_info
        ):
            headers = {}
            if self.config.site_url:
                headers["HTTP-Referer"] = self.config.site_url
            if self.config.site_name:
                headers["X-Title"] = self.config.site_name
            return headers

        return {}

    def generate_text(self, prompt: str, api_key: str, timeout: float) -> str:
        """
        Send one prompt and return the generated text.

        Raises:
            RateLimitError: The provider answered with HTTP 429.
            TranslationTimeoutError: No answer within ``timeout`` seconds.
            UpstreamError: Any other network failure or unexpected answer.
        """
        if self.config.provider == LLMProvider.GEMINI:
            return self._generate_gemini(prompt, api_key, timeout)
        return self._generate_openai(prompt, api_key, timeout)

    def _generate_gemini(self, prompt: str, api_key: str, timeout: float) -> str:
        url = GEMINI_ENDPOINT.format(model=self.config.model)
        payload = {"contents": [{"parts": [{"text": prompt}]}]}

        logger.debug(
            f"Sending generateContent request (model: {self.config.model}, timeout: {timeout}s)"
        )
        try:
            response = _get_session().post(
                url, params={"key": api_key}, json=payload, timeout=timeout
            )
        except requests.Timeout as e:
            raise TranslationTimeoutError(
                f"Gemini API did not answer within {timeout} seconds",
                hint="Reduce the batch size so each request carries fewer strings.",
            ) from e
        except requests.RequestException as e:
            raise UpstreamError(f"Network error calling Gemini API: {e}") from e

        if response.status_code == 429:
            raise RateLimitError("Gemini API rate limit exceeded (HTTP 429)")
        if response.status_code != 200:
            raise UpstreamError(
                f"Gemini API error {response.status_code}: {response.text[:MAX_ERROR_BODY]}"
            )

        try:
            data = response.json()
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise UpstreamError(
                f"Unexpected Gemini API response: {response.text[:MAX_ERROR_BODY]}"
            ) from e

        logger.debug(f"Received response from gemini: {text[:100]}...")
        return text

    def _generate_openai(self, prompt: str, api_key: str, timeout: float) -> str:
        provider = self.config.provider.value
        # The key pool owns retries, so the SDK must not retry on its own.
        client = openai.OpenAI(
            api_key=api_key,
            base_url=self.BASE_URLS[self.config.provider],
            max_retries=0,
            timeout=timeout,
        )

        api_params = {
            "model": self.config.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": 0,
        }
        extra_headers = self._get_extra_headers()
        if extra_headers:
            api_params["extra_headers"] = extra_headers

        logger.debug(f"Sending chat completion request to {provider} (model: {self.config.model})")
        try:
            response = client.chat.completions.create(**api_params)
        except openai.APITimeoutError as e:
            raise TranslationTimeoutError(
                f"{provider} API did not answer within {timeout} seconds",
                hint="Reduce the batch size so each request carries fewer strings.",
            ) from e
        except openai.RateLimitError as e:
            raise RateLimitError(f"{provider} API rate limit exceeded: {e}") from e
        except openai.APIConnectionError as e:
            raise UpstreamError(f"Network error calling {provider} API: {e}") from e
        except openai.APIStatusError as e:
            raise UpstreamError(
                f"{provider} API error {e.status_code}: {str(e)[:MAX_ERROR_BODY]}"
            ) from e

        if not response.choices or response.choices[0].message.content is None:
            raise UpstreamError(f"{provider} API returned no content")

        generated_text = response.choices[0].message.content.strip()
        logger.debug(f"Received response from {provider}: {generated_text[:100]}...")
        return generated_text


def resolve_model_name(
    config_url: Optional[str], default: str = DEFAULT_MODEL, timeout: float = 10
) -> str:
    """
    Look up the model to use from a remote JSON document ``{"model": "<id>"}``.

    The lookup is best effort: no URL, a failed request or a malformed
    answer all fall back to ``default``.
    """
    if not config_url:
        return default

    try:
        response = requests.get(config_url, timeout=timeout)
        response.raise_for_status()
        model = response.json().get("model")
    except (requests.RequestException, ValueError, AttributeError) as e:
        logger.warning(f"Could not fetch model configuration, using {default}: {e}")
        return default

    if not isinstance(model, str) or not model.strip():
        logger.warning(f"Model configuration has no usable model, using {default}")
        return default

    logger.info(f"Using model from remote configuration: {model}")
    return model.strip()
