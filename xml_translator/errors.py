#!/usr/bin/env python3
"""
Error taxonomy for the XML translator.

Every failure raised by the translator carries a human readable message and,
where one exists, a ``hint`` telling the operator how to fix it. Cancellation
is not a ``TranslatorError``; callers report it without treating it as a
failure.
"""

from typing import Optional


class TranslatorError(Exception):
    """Base class for translation failures."""

    def __init__(self, message: str, hint: Optional[str] = None) -> None:
        super().__init__(message)
        self.hint = hint

    def __str__(self) -> str:
        message = super().__str__()
        if self.hint:
            return f"{message}\nHint: {self.hint}"
        return message


class NoCredentialsError(TranslatorError):
    """No usable API key was configured (or too few for the requested mode)."""


class RateLimitError(TranslatorError):
    """The upstream API answered with HTTP 429 or an equivalent signal."""


class UpstreamError(TranslatorError):
    """Network failure or unexpected answer from the upstream API."""


# Alias used for network failures.
NetworkError = UpstreamError


class TranslationTimeoutError(TranslatorError, TimeoutError):
    """The upstream call did not finish within the computed timeout."""


class ValidationError(TranslatorError):
    """The upstream response was malformed or did not match the request."""


class ResourceParseError(TranslatorError):
    """A strings.xml document could not be parsed."""


class TranslationCancelledError(Exception):
    """The run was cancelled by the user."""

    def __init__(self, message: str = "Translation cancelled by user") -> None:
        super().__init__(message)
