"""Parsing of scene pointers ("x,y" parcel locators) into grid coordinates."""

import re
from typing import Tuple

POINTER_DELIMITER = ","

# Signed base-10 integer, ASCII digits only
_INT_RE = re.compile(r"[+-]?[0-9]+")


class InvalidPointerError(ValueError):
    """Raised when a pointer is not of the form "<int>,<int>"."""
    pass


def _parse_component(pointer: str, value: str) -> int:
    if not _INT_RE.fullmatch(value):
        raise InvalidPointerError(f"Invalid pointer format: {pointer!r}")
    return int(value)


def pointer_to_coords(pointer: str) -> Tuple[int, int]:
    """
    Convert a string pointer into grid coordinates.

    Components past the second one are ignored.

    Args:
        pointer: Locator such as "10,-5"

    Returns:
        (x, y) tuple

    Raises:
        InvalidPointerError: If there are fewer than two components or
            either of the first two is not an integer
    """
    if not isinstance(pointer, str):
        raise InvalidPointerError(f"Invalid pointer format: {pointer!r}")
    parts = pointer.split(POINTER_DELIMITER)
    if len(parts) < 2:
        raise InvalidPointerError(f"Invalid pointer format: {pointer!r}")
    return _parse_component(pointer, parts[0]), _parse_component(pointer, parts[1])
