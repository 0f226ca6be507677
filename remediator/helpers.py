"""
RMM Agent Remediator: Helper functions
Copyright (C) 2003-2026 ITRS Group Ltd. All rights reserved
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Union


# Dotted numeric versions, e.g. '2024.1.0.105'
RE_VERSION = re.compile(r'^\s*v?(\d+(?:\.\d+)*)')
MASK_VISIBLE_CHARS = 4


logger = logging.getLogger(__name__)


def merge_dictionary(original: dict, updates: dict, merge_lists: tuple[str] = ()):
    """Updates a dict with values from another"""
    if updates:
        for key, value in updates.items():
            if isinstance(value, dict) and isinstance(original.get(key), dict):
                # recursion
                merge_dictionary(original[key], value, merge_lists)
            elif (
                    isinstance(value, list) and
                    key in original and
                    key in merge_lists and
                    type(original[key]) == type(value)
            ):
                # add to existing value
                original[key] += value
            else:
                # overwrite previous value
                original[key] = value


def parse_version(text: Union[str, tuple[int, ...]]) -> tuple[int, ...]:
    """
    Parses a dotted version string such as '2024.1.0.105' into a tuple of ints.
    Trailing non-numeric suffixes are ignored ('12.3.0-beta' -> (12, 3, 0)).
    Tuples are returned unchanged.
    """
    if isinstance(text, tuple):
        return text
    m = RE_VERSION.match(str(text))
    if not m:
        raise ValueError(f"Cannot parse version from '{text}'")
    return tuple(int(part) for part in m.group(1).split('.'))


def normalise_version(version: tuple[int, ...]) -> tuple[int, ...]:
    """Strips trailing zero parts so that (1, 2) and (1, 2, 0, 0) compare equal"""
    parts = list(version)
    while parts and parts[-1] == 0:
        parts.pop()
    return tuple(parts)


def format_version(version: tuple[int, ...]) -> str:
    return '.'.join(str(part) for part in version)


def mask_secret(secret: object) -> str:
    """Masks all but the last few characters of a secret for logging"""
    text = str(secret)
    if len(text) <= MASK_VISIBLE_CHARS:
        return '*' * len(text)
    return '*' * (len(text) - MASK_VISIBLE_CHARS) + text[-MASK_VISIBLE_CHARS:]
