#!/usr/bin/env python3
"""
String and folder filtering

Android resource folders can carry configuration qualifiers (density,
orientation, night mode, API level, ...) that do not describe a language.
Those folders, and string names carrying the same qualifiers, are excluded
from translation.
"""

import logging
import re
from pathlib import Path
from typing import List, Tuple, Union

logger = logging.getLogger(__name__)

VALUES_PREFIX = "values"

EXCLUDE_PATTERNS = [
    # Version qualifiers (v21, v29, ...)
    r"-v\d+",
    r"value-v\d+",
    # Night mode
    "-night",
    "-notnight",
    "value-night",
    "value-notnight",
    # Orientation
    "-land",
    "-port",
    "value-land",
    "value-port",
    # Screen size
    "-small",
    "-normal",
    "-large",
    "-xlarge",
    "value-small",
    "value-normal",
    "value-large",
    "value-xlarge",
    # Screen density
    "-ldpi",
    "-mdpi",
    "-hdpi",
    "-xhdpi",
    "-xxhdpi",
    "-xxxhdpi",
    "-nodpi",
    "-tvdpi",
    "value-ldpi",
    "value-mdpi",
    "value-hdpi",
    "value-xhdpi",
    "value-xxhdpi",
    "value-xxxhdpi",
    # Smallest width, available width and height
    r"-sw\d+dp",
    r"-w\d+dp",
    r"-h\d+dp",
    r"value-sw\d+dp",
    r"value-w\d+dp",
    r"value-h\d+dp",
    # UI mode
    "-car",
    "-desk",
    "-television",
    "-appliance",
    "-watch",
    "-vrheadset",
    "value-car",
    "value-desk",
    "value-television",
    "value-appliance",
    "value-watch",
    "value-vrheadset",
    # Keyboard and touch input
    "-keysexposed",
    "-keyshidden",
    "-keyssoft",
    "-notouch",
    "-stylus",
    "-finger",
    # Navigation
    "-navexposed",
    "-navhidden",
    "-nonav",
    "-dpad",
    "-trackball",
    "-wheel",
    # Round screens (watches)
    "-round",
    "-notround",
]

_COMPILED_PATTERNS = [
    (pattern, re.compile(pattern, re.IGNORECASE)) for pattern in EXCLUDE_PATTERNS
]


def _matching_patterns(candidate: str) -> List[str]:
    return [pattern for pattern, regex in _COMPILED_PATTERNS if regex.search(candidate)]


def is_excluded_name(string_name: str) -> bool:
    """Return True if a string resource name carries a qualifier pattern."""
    return any(regex.search(string_name) for _, regex in _COMPILED_PATTERNS)


def is_excluded_folder(folder_name: str) -> bool:
    """
    Return True if a values folder is a qualifier folder rather than a language.

    Examples:
      - "values"      -> False (base folder, never excluded)
      - "values-vi"   -> False (Vietnamese)
      - "values-v21"  -> True (API level qualifier)
      - "drawable-v21" -> False (not a values folder at all)
    """
    if not folder_name.startswith(VALUES_PREFIX):
        return False
    if folder_name == VALUES_PREFIX:
        return False
    return is_excluded_name(folder_name)


def diagnose_exclusion(name: str, is_folder: bool = False) -> Tuple[bool, List[str]]:
    """
    Explain whether a string name or folder name would be excluded.

    Returns:
        A tuple of (excluded, matched patterns). The pattern list is empty when
        the candidate is kept.
    """
    excluded = is_excluded_folder(name) if is_folder else is_excluded_name(name)
    if not excluded:
        return False, []
    return True, _matching_patterns(name)


def get_filtered_values_folders(resource_dir: Union[str, Path]) -> List[str]:
    """List the values folders of a resource root, minus qualifier folders."""
    resource_path = Path(resource_dir)
    if not resource_path.is_dir():
        return []

    all_folders = [
        child.name
        for child in resource_path.iterdir()
        if child.is_dir() and child.name.startswith(VALUES_PREFIX)
    ]
    excluded = sorted(name for name in all_folders if is_excluded_folder(name))
    if excluded:
        logger.info(f"Excluded {len(excluded)} qualifier folders: {', '.join(excluded)}")

    return sorted(name for name in all_folders if not is_excluded_folder(name))


def filtering_info() -> str:
    return f"{len(EXCLUDE_PATTERNS)} patterns configured to exclude qualifier folders"
