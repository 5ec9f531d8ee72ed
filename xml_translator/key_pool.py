#!/usr/bin/env python3
"""
API key rotation and rate-limit policy

Every batch task draws its key from one shared ``ApiKeyPool``. The retry
policy is one cooldown retry on a rate limit and one
key-switch retry on an upstream failure.
"""

import logging
import threading
from typing import Callable, Iterable, List, TypeVar

from .errors import (
    NoCredentialsError,
    RateLimitError,
    UpstreamError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_RATE_LIMIT_COOLDOWN = 30.0
DEFAULT_KEY_SWITCH_DELAY = 4.0

NO_KEYS_HINT = (
    "Create a key at https://aistudio.google.com/app/apikey and pass it with "
    "--api-key, or export GOOGLE_AI_API_KEY (GOOGLE_AI_API_KEY_1, "
    "GOOGLE_AI_API_KEY_2 for more keys)."
)
RATE_LIMIT_HINT = "Add more API keys, lower the batch size or run languages sequentially."


def mask_key(key: str) -> str:
    """Return a log-safe form of an API key."""
    if len(key) <= 10:
        return "***"
    return f"{key[:6]}...{key[-4:]}"


class ApiKeyPool:
    """Round-robin pool of API keys shared by all worker threads."""

    def __init__(self, keys: Iterable[str]):
        self._keys: List[str] = list(keys)
        if not self._keys:
            raise NoCredentialsError("No API keys configured", hint=NO_KEYS_HINT)
        self._cursor = 0
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._keys)

    @property
    def keys(self) -> List[str]:
        return list(self._keys)

    def next_key(self) -> str:
        with self._lock:
            key = self._keys[self._cursor]
            self._cursor = (self._cursor + 1) % len(self._keys)
        logger.debug(f"Using API key {mask_key(key)}")
        return key


def acquire_keys_or_fail(keys: Iterable[str]) -> ApiKeyPool:
    """
    Build a key pool from the configured keys.

    Raises:
        NoCredentialsError: If no key is configured.
    """
    usable = [key for key in keys if key and key.strip()]
    if not usable:
        raise NoCredentialsError("No API keys configured", hint=NO_KEYS_HINT)
    return ApiKeyPool(usable)


def call_with_retry(
    call: Callable[[str], T],
    credential: str,
    pool: ApiKeyPool,
    sleep: Callable[[float], None],
    rate_limit_cooldown: float = DEFAULT_RATE_LIMIT_COOLDOWN,
    key_switch_delay: float = DEFAULT_KEY_SWITCH_DELAY,
) -> T:
    """
    Run ``call(credential)`` under the rate-limit and key-rotation policy.

    - RateLimitError: sleep ``rate_limit_cooldown``, retry once with the same
      key; a second rate limit is raised with a remedy hint.
    - UpstreamError: with more than one key, sleep ``key_switch_delay`` and
      retry once with the next key; otherwise raise. A rate limit on that
      retry is raised with the same remedy hint.
    - TranslationTimeoutError and ValidationError are raised unchanged.
    """
    try:
        return call(credential)
    except RateLimitError as e:
        logger.warning(
            f"Rate limited on key {mask_key(credential)}, retrying in {rate_limit_cooldown}s: {e}"
        )
        sleep(rate_limit_cooldown)
        try:
            return call(credential)
        except RateLimitError as retry_error:
            raise RateLimitError(
                f"Rate limit still exceeded after waiting {rate_limit_cooldown}s",
                hint=RATE_LIMIT_HINT,
            ) from retry_error
    except UpstreamError as e:
        if len(pool) < 2:
            raise
        logger.warning(f"Request failed, retrying with another API key: {e}")
        sleep(key_switch_delay)
        try:
            return call(pool.next_key())
        except RateLimitError as retry_error:
            raise RateLimitError(
                "Rate limited after switching API keys", hint=RATE_LIMIT_HINT
            ) from retry_error
