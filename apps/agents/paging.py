from __future__ import annotations

import math
from numbers import Real


def _as_whole_number(value: object) -> int | None:
    # bool is an int subclass; a page index of True is a caller bug, not page 1.
    if isinstance(value, bool) or not isinstance(value, Real):
        return None
    if isinstance(value, int):
        return value
    as_float = float(value)
    if not math.isfinite(as_float) or not as_float.is_integer():
        return None
    return int(as_float)


def plan_page(page: int, page_size: int, total: int) -> list[int]:
    """Map a 0-based page onto the dense 1-based agent ids it covers.

    Invalid or exhausted inputs return an empty list so infinite-scroll
    callers can treat it as "no more data".
    """
    page_value = _as_whole_number(page)
    size_value = _as_whole_number(page_size)
    total_value = _as_whole_number(total)
    if page_value is None or size_value is None or total_value is None:
        return []
    if page_value < 0 or size_value <= 0 or total_value <= 0:
        return []

    start = page_value * size_value
    if start >= total_value:
        return []

    end = min(start + size_value, total_value)
    return list(range(start + 1, end + 1))
