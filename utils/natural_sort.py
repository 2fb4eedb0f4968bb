import re
from typing import Iterable, List, Tuple, Union

_DIGIT_RUN = re.compile(r"(\d+)")


def natural_key(value: str) -> Tuple[Tuple[int, Union[int, str]], ...]:
    """
    Sort key that orders strings the way a person reads them.

    Digit runs compare by numeric value ("2" < "10"), text compares without
    regard to case ("a" and "A" tie). At the same position a number sorts
    before text. "02" and "2" produce the same key, so a stable sort keeps
    them in the order they were seen.

    Args:
        value: Identifier to build a key for

    Returns:
        Tuple of (kind, part) pairs usable as a sort key
    """
    parts = []
    for segment in _DIGIT_RUN.split(str(value)):
        if not segment:
            continue
        if segment.isdecimal():
            parts.append((0, int(segment)))
        else:
            parts.append((1, segment.casefold()))
    return tuple(parts)


def natural_sorted(values: Iterable[str]) -> List[str]:
    """Return the values in ascending natural order (stable)."""
    return sorted(values, key=natural_key)
