import logging
import re
from typing import Optional

from babel import Locale, UnknownLocaleError

from .string_filter import VALUES_PREFIX

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGE = "default"


def get_language_name(locale_code: str) -> str:
    """
    Get language name from various locale code formats using Babel.
    Handles Android resource qualifiers (standard and BCP 47).

    Args:
        locale_code: A string representing a locale code in various formats:
                    - Language code (e.g., 'en', 'zh')
                    - Language with country (e.g., 'en-US', 'zh-CN')
                    - Android standard qualifier (e.g., 'en-rUS', 'zh-rCN')
                    - Android BCP 47 qualifier (e.g., 'b+en+US', 'b+zh+CN')

    Returns:
        The English display name of the language, including region if available.
        Returns the original locale_code if parsing fails.
    """
    if locale_code == DEFAULT_LANGUAGE:
        return "Default (English)"

    normalized_code = re.sub(r"^b\+", "", locale_code)
    normalized_code = re.sub(r"-r", "_", normalized_code)
    normalized_code = re.sub(r"[-+]", "_", normalized_code)

    try:
        locale = Locale.parse(normalized_code)
    except (ValueError, TypeError, UnknownLocaleError) as e:
        logger.warning(
            f"Could not determine language name for locale '{locale_code}': {e}"
        )
        return locale_code
    return locale.get_display_name(locale="en")


def language_from_folder(folder_name: str) -> Optional[str]:
    """
    Return the language qualifier of a values folder.

    "values" maps to "default"; "values-es" maps to "es". Anything that is not
    a values folder maps to None.
    """
    if folder_name == VALUES_PREFIX:
        return DEFAULT_LANGUAGE
    if folder_name.startswith(VALUES_PREFIX + "-"):
        return folder_name[len(VALUES_PREFIX) + 1:]
    return None


def folder_for_language(language: str) -> str:
    if language == DEFAULT_LANGUAGE:
        return VALUES_PREFIX
    return f"{VALUES_PREFIX}-{language}"


def normalize_target(target: str) -> str:
    """Accept "es" or "values-es" and return the folder name."""
    target = target.strip().strip("/")
    if target == VALUES_PREFIX or target.startswith(VALUES_PREFIX + "-"):
        return target
    return folder_for_language(target)


def to_bcp47(qualifier: str) -> str:
    """
    Convert an Android language qualifier into a BCP 47 tag for prompts.

    >>> to_bcp47("zh-rCN")
    'zh-CN'
    >>> to_bcp47("b+sr+Latn")
    'sr-Latn'
    """
    if qualifier.startswith("b+"):
        return qualifier[2:].replace("+", "-")
    return re.sub(r"-r([A-Za-z]{2}|\d{3})$", r"-\1", qualifier)
