# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Human-readable sizes in the style of ``du -h``.
"""

import math
import re

_UNITS = ("K", "M", "G", "T", "P")
_SIZE_RE = re.compile(r"^\s*(?P<value>\d+(?:\.\d+)?)\s*(?P<unit>[BKMGTP]?)i?B?\s*$", re.I)


def format_size(num_bytes: int) -> str:
    """
    Format a byte count like ``du -h``.

    Values are rounded up; below 10 one decimal is shown.

    Examples:
        >>> format_size(512)
        '512B'
        >>> format_size(1234)
        '1.3K'
        >>> format_size(10240)
        '10K'
    """
    if num_bytes < 1024:
        return f"{num_bytes}B"

    value = float(num_bytes)
    unit = _UNITS[0]
    for unit in _UNITS:
        value /= 1024
        # 1023.9K rounds up to 1024K, which du shows as 1.0M
        if math.ceil(value) < 1024:
            break

    tenths = math.ceil(value * 10) / 10
    if tenths < 10:
        return f"{tenths:.1f}{unit}"
    return f"{math.ceil(value)}{unit}"


def parse_size(text: str) -> int | None:
    """
    Best-effort inverse of format_size().

    Used for manifests that only carry human-readable sizes. The result is
    approximate because the human form is rounded.
    """
    match = _SIZE_RE.match(text)
    if not match:
        return None

    value = float(match.group("value"))
    unit = match.group("unit").upper()
    if unit in ("", "B"):
        return int(value)
    return int(value * 1024 ** (_UNITS.index(unit) + 1))
