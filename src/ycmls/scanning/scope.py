"""Bracket-balanced scans over masked text.

Both scans expect text produced by :func:`ycmls.scanning.masking.mask_literals`;
brackets and commas inside literals or comments would otherwise be counted.
"""

from __future__ import annotations

SCOPE_PAIRS = {"(": ")", "[": "]", "{": "}"}


def find_enclosing_paren(text: str, offset: int) -> int | None:
    """Return the index of the ``(`` that encloses ``offset``, if any."""
    depth = 1
    for index in range(min(offset, len(text)) - 1, -1, -1):
        char = text[index]
        if char == ")":
            depth += 1
        elif char == "(":
            depth -= 1
            if depth == 0:
                return index
    return None


def skip_scope(text: str, index: int, end: int) -> int:
    """Return the index of the closer matching the opener at ``index``.

    Only the opener's own bracket kind is tracked. Without a closer before
    ``end`` the result is ``end``.
    """
    opener = text[index]
    closer = SCOPE_PAIRS[opener]
    depth = 0
    while index < end:
        char = text[index]
        if char == opener:
            depth += 1
        elif char == closer:
            depth -= 1
            if depth == 0:
                return index
        index += 1
    return end


def count_top_level_commas(text: str, start: int, end: int) -> int:
    count = 0
    index = max(start, 0)
    end = min(end, len(text))
    while index < end:
        char = text[index]
        if char == ",":
            count += 1
        elif char in SCOPE_PAIRS:
            index = skip_scope(text, index, end)
        index += 1
    return count
