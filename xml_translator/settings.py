#!/usr/bin/env python3
"""
Translator settings

Credentials and tunables come from ``XML_TRANSLATOR_*`` environment
variables and are then overridden by command line arguments.
"""

import logging
import os
from dataclasses import dataclass, field, fields
from typing import List, Mapping, Optional

from .errors import NoCredentialsError
from .key_pool import NO_KEYS_HINT
from .llm_provider import DEFAULT_MODEL, LLMProvider

logger = logging.getLogger(__name__)

ENV_PREFIX = "XML_TRANSLATOR_"

GEMINI_KEY_VARIABLES = ("GOOGLE_AI_API_KEY", "GOOGLE_AI_API_KEY_1", "GOOGLE_AI_API_KEY_2")
PROVIDER_KEY_VARIABLES = {
    LLMProvider.OPENAI: ("OPENAI_API_KEY",),
    LLMProvider.OPENROUTER: ("OPENROUTER_API_KEY",),
}
PLACEHOLDER_MARKERS = ("REPLACE_WITH", "YOUR_ACTUAL", "your_api_key")


@dataclass
class TranslatorSettings:
    provider: LLMProvider = LLMProvider.GEMINI
    model: str = DEFAULT_MODEL
    model_config_url: Optional[str] = None
    source_language: str = "en"
    batch_size: int = 50
    per_key_calls_per_minute: int = 10
    rate_limit_cooldown: float = 30.0
    key_switch_delay: float = 4.0
    inter_batch_delay: float = 2.0
    inter_language_delay: float = 1.0
    group_cooldown: float = 60.0
    timeout_base: float = 30.0
    timeout_per_item: float = 5.0
    timeout_min: float = 30.0
    timeout_max: float = 300.0
    site_url: Optional[str] = None
    site_name: Optional[str] = None
    api_keys: List[str] = field(default_factory=list)
    use_default_keys: bool = True

    def __post_init__(self):
        if isinstance(self.provider, str):
            self.provider = LLMProvider(self.provider.lower())
        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if self.per_key_calls_per_minute < 1:
            raise ValueError("per_key_calls_per_minute must be at least 1")


def is_valid_gemini_key(key: str) -> bool:
    """Check the Google AI key format and reject placeholder text."""
    return (
        key.startswith("AIzaSy")
        and len(key) >= 35
        and not any(marker in key for marker in PLACEHOLDER_MARKERS)
    )


def get_default_api_keys(
    environ: Optional[Mapping[str, str]] = None,
    provider: LLMProvider = LLMProvider.GEMINI,
) -> List[str]:
    """Collect API keys from the provider's environment variables."""
    environ = os.environ if environ is None else environ
    keys: List[str] = []

    if provider == LLMProvider.GEMINI:
        for variable in GEMINI_KEY_VARIABLES:
            key = (environ.get(variable) or "").strip()
            if not key:
                continue
            if not is_valid_gemini_key(key):
                logger.warning(f"Ignoring {variable}: not a valid Google AI API key")
                continue
            if key not in keys:
                keys.append(key)
    else:
        for variable in PROVIDER_KEY_VARIABLES[provider]:
            key = (environ.get(variable) or "").strip()
            if key and not any(marker in key for marker in PLACEHOLDER_MARKERS):
                keys.append(key)

    return keys


def get_valid_api_keys(
    settings: TranslatorSettings, environ: Optional[Mapping[str, str]] = None
) -> List[str]:
    """
    Default keys (when enabled) followed by the user keys, without duplicates.

    Raises:
        NoCredentialsError: If no key is left.
    """
    all_keys: List[str] = []
    if settings.use_default_keys:
        default_keys = get_default_api_keys(environ, settings.provider)
        all_keys.extend(default_keys)
        logger.info(f"Loaded {len(default_keys)} default API keys")

    user_keys = [key.strip() for key in settings.api_keys if key and key.strip()]
    for key in user_keys:
        if key not in all_keys:
            all_keys.append(key)
    if user_keys:
        logger.info(f"Loaded {len(user_keys)} user API keys")

    if not all_keys:
        raise NoCredentialsError("No API key found", hint=NO_KEYS_HINT)

    logger.info(f"{len(all_keys)} API keys ready")
    return all_keys


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_settings(environ: Optional[Mapping[str, str]] = None) -> TranslatorSettings:
    """
    Build settings from ``XML_TRANSLATOR_<FIELD>`` environment variables.

    ``XML_TRANSLATOR_API_KEYS`` is a comma separated list. Values that do not
    parse fall back to the default with a warning.
    """
    environ = os.environ if environ is None else environ
    values = {}

    for settings_field in fields(TranslatorSettings):
        variable = ENV_PREFIX + settings_field.name.upper()
        raw = environ.get(variable)
        if raw is None or raw.strip() == "":
            continue

        default = settings_field.default
        if settings_field.name == "api_keys":
            values["api_keys"] = [key.strip() for key in raw.split(",") if key.strip()]
        elif settings_field.name == "provider":
            try:
                values["provider"] = LLMProvider(raw.strip().lower())
            except ValueError:
                logger.warning(f"Unknown provider in {variable}: {raw!r}, using {default.value}")
        elif isinstance(default, bool):
            values[settings_field.name] = _parse_bool(raw)
        elif isinstance(default, (int, float)):
            try:
                number = type(default)(raw.strip())
            except ValueError:
                logger.warning(f"Invalid number in {variable}: {raw!r}, using {default}")
                continue
            if number < 0 or (isinstance(default, int) and number < 1):
                logger.warning(f"Out of range value in {variable}: {raw!r}, using {default}")
                continue
            values[settings_field.name] = number
        else:
            values[settings_field.name] = raw.strip()

    return TranslatorSettings(**values)
