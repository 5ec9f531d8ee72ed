#!/usr/bin/env python3
"""Helpers for escaping string resource text before it is written to XML."""

from typing import List, Optional
import re

__all__ = [
    "escape",
    "unescape",
    "escape_ampersands",
    "escape_apostrophes",
    "escape_control_chars",
]

# An ampersand is left alone when it already starts an entity such as &amp; or &#39;
_BARE_AMPERSAND_PATTERN = re.compile(r"&(?![a-zA-Z0-9#]+;)")
_HTML_TAG_PATTERN = re.compile(r"(<[^>]+>)")
_HTML_SINGLE_QUOTE_ATTR_PATTERN = re.compile(r"(\s+[\w:-]+)=\'([^\']*)\'")
_CONTROL_CHAR_ESCAPES = {"\n": "\\n", "\t": "\\t", "\r": "\\r"}
_ESCAPE_TOKEN_PATTERN = re.compile(r"\\([ntr'])")
_ESCAPE_TOKEN_VALUES = {"n": "\n", "t": "\t", "r": "\r", "'": "'"}


def _escape_character(text: str, target: str) -> str:
    """Escape occurrences of a character unless already escaped."""
    result: List[str] = []
    backslash_run = 0

    for ch in text:
        if ch == "\\":
            backslash_run += 1
            result.append(ch)
            continue

        if ch == target and backslash_run % 2 == 0:
            result.append(f"\\{target}")
        else:
            result.append(ch)
        backslash_run = 0

    return "".join(result)


def escape_apostrophes(text: Optional[str]) -> Optional[str]:
    """Escape apostrophes with a single backslash, preserving existing escapes."""
    if not text:
        return text
    return _escape_character(text, "'")


def escape_ampersands(text: Optional[str]) -> Optional[str]:
    """Turn bare ampersands into ``&amp;`` without touching existing entities."""
    if not text:
        return text
    return _BARE_AMPERSAND_PATTERN.sub("&amp;", text)


def escape_control_chars(text: Optional[str]) -> Optional[str]:
    """Replace raw newline, tab and carriage return with their two-character tokens."""
    if not text:
        return text
    return "".join(_CONTROL_CHAR_ESCAPES.get(ch, ch) for ch in text)


def _normalize_html_tag_attributes(segment: str) -> str:
    return _HTML_SINGLE_QUOTE_ATTR_PATTERN.sub(
        lambda match: f'{match.group(1)}="{match.group(2)}"', segment
    )


def escape(text: Optional[str]) -> Optional[str]:
    """
    Escape text for a <string> element of an Android resource file.

    Angle brackets and double quotes are kept as they are: inline markup such
    as ``<b>`` or ``<font color="#FF0000">`` has to stay parseable. Apostrophes
    are only escaped outside of markup tags.
    """
    if not text:
        return text

    value = escape_ampersands(text)

    processed_segments: List[str] = []
    for segment in _HTML_TAG_PATTERN.split(value):
        if not segment:
            continue
        if segment.startswith("<") and segment.endswith(">"):
            processed_segments.append(_normalize_html_tag_attributes(segment))
        else:
            processed_segments.append(escape_apostrophes(segment))

    return escape_control_chars("".join(processed_segments))


def unescape(text: Optional[str]) -> Optional[str]:
    """Reverse :func:`escape` for plain text (markup attributes are not restored)."""
    if not text:
        return text
    value = _ESCAPE_TOKEN_PATTERN.sub(
        lambda match: _ESCAPE_TOKEN_VALUES[match.group(1)], text
    )
    return value.replace("&amp;", "&")
