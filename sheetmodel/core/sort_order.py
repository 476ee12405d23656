"""Sort orders applicable to groups and row objects of the data model.

Provides:
- SortOrder: the supported orders (the values are the names used in templates)
- compare(): three-way string comparison under a given order
- comparator(): a key function for sorted()/list.sort()

Note that inverseNumerical is not the mirror of numerical: number strings precede
non-number strings in both orders. Only the ordering inside both blocks is inverted.
"""

import functools
import math
from enum import Enum
from typing import Callable, Optional


class SortOrder(str, Enum):
    UNDEFINED = "undefined"
    LEXICAL = "lexical"
    ASCII = "ASCII"
    NUMERICAL = "numerical"
    INVERSE_LEXICAL = "inverseLexical"
    INVERSE_ASCII = "inverseASCII"
    INVERSE_NUMERICAL = "inverseNumerical"


def _sign(a, b) -> int:
    return (a > b) - (a < b)


def parse_number(text: str) -> Optional[float]:
    """Interpret a string as a floating point number; None if it isn't one.

    NaN is never a number here: it has no place in a total order. Infinity is only
    accepted as an overflowing literal or spelled exactly "Infinity".
    """
    # float() accepts digit separators, a number literal in a sheet must not
    if "_" in text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    if math.isnan(number):
        return None
    if math.isinf(number) and "inf" in text.lower() and text.strip().lstrip("+-") != "Infinity":
        return None
    return number


def compare_ignore_case(a: str, b: str) -> int:
    return _sign(a.lower(), b.lower())


def compare_numbers(
    a: Optional[float],
    b: Optional[float],
    text_a: str,
    text_b: str,
    inverse: bool = False,
) -> int:
    """Compare two operands of which either may or may not be a number.

    Numbers precede non-numbers regardless of `inverse`. Two numbers are compared by
    value, two non-numbers case-insensitively by their text; `inverse` flips only
    these two inner comparisons.
    """
    if a is not None and b is not None:
        if a < b:
            return 1 if inverse else -1
        if a > b:
            return -1 if inverse else 1
        return 0
    if a is not None:
        return -1
    if b is not None:
        return 1
    if inverse:
        return compare_ignore_case(text_b, text_a)
    return compare_ignore_case(text_a, text_b)


def compare(a: str, b: str, sort_order: SortOrder) -> int:
    """Compare two strings under the given sort order. Returns -1, 0 or 1."""
    if sort_order == SortOrder.LEXICAL:
        return compare_ignore_case(a, b)
    if sort_order == SortOrder.INVERSE_LEXICAL:
        return compare_ignore_case(b, a)
    if sort_order == SortOrder.ASCII:
        return _sign(a, b)
    if sort_order == SortOrder.INVERSE_ASCII:
        return _sign(b, a)
    if sort_order == SortOrder.NUMERICAL:
        return compare_numbers(parse_number(a), parse_number(b), a, b)
    if sort_order == SortOrder.INVERSE_NUMERICAL:
        return compare_numbers(parse_number(a), parse_number(b), a, b, inverse=True)
    # undefined: everything is equal, a stable sort keeps the order
    return 0


def comparator(sort_order: SortOrder) -> Callable[[str], object]:
    """Return a sort key implementing the given order for strings."""
    return functools.cmp_to_key(lambda a, b: compare(a, b, sort_order))
