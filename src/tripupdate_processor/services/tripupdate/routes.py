"""Route and direction conversions between back-office and GTFS-RT codes."""

from __future__ import annotations

import re
from typing import Iterable, Optional, Pattern, Sequence, Tuple

# Jore (back-office) direction codes
JORE_DIRECTION_OUTBOUND = 1
JORE_DIRECTION_INBOUND = 2

DEFAULT_EXCLUDED_ROUTE_PATTERNS: Tuple[str, ...] = (r"^300[12]",)


def normalize_route_id(route_id: str) -> str:
    """Map an internal route id to the public GTFS route id.

    Internal route ids carry a trailing variant digit after a letter or a
    space ("1010H4", "1010 3") which is not part of the public id.

    Examples:
        >>> normalize_route_id("1010H4")
        '1010H'
        >>> normalize_route_id("1010 3")
        '1010'
        >>> normalize_route_id("1010HK")
        '1010HK'
    """
    if len(route_id) <= 4:
        return route_id

    variant = route_id[-1]
    before = route_id[-2]
    if variant.isdigit() and (before.isalpha() or before == " "):
        return route_id[:-1].rstrip(" ")
    return route_id


def jore_to_gtfs_direction(jore_direction: int) -> Tuple[int, bool]:
    """Convert a Jore direction (1/2) into a GTFS-RT direction (0/1).

    Returns:
        Tuple of (gtfs_direction, ok). ``ok`` is False for anything
        outside {1, 2}; the direction value is then meaningless.
    """
    if jore_direction in (JORE_DIRECTION_OUTBOUND, JORE_DIRECTION_INBOUND):
        return jore_direction - 1, True
    return -1, False


def compile_route_patterns(patterns: Iterable[str]) -> Tuple[Pattern[str], ...]:
    """Compile route exclusion regexes."""
    return tuple(re.compile(p) for p in patterns)


def matching_route_pattern(
    route_id: str,
    patterns: Sequence[Pattern[str]],
) -> Optional[str]:
    """Return the first pattern matching ``route_id``, or None."""
    for pattern in patterns:
        if pattern.search(route_id):
            return pattern.pattern
    return None
