"""Mask literal and comment contents so structural scans ignore them.

Every character inside a string literal, char literal or single-line comment
body is replaced by a filler character. Delimiters and everything else keep
their position, so offsets computed on the masked text are valid on the
unmasked text.
"""

from __future__ import annotations

import re

DEFAULT_FILLER = "_"
DEFAULT_COMMENT_MARKER = "//"

# A backslash escapes the next character on the same line. A trailing
# backslash is consumed alone so the literal still ends at end-of-line.
_DOUBLE_QUOTED_RE = re.compile(r'"((?:[^"\\\n]|\\.?)*)("|$)', re.MULTILINE)
_SINGLE_QUOTED_RE = re.compile(r"'((?:[^'\\\n]|\\.?)*)('|$)", re.MULTILINE)


def _comment_re(marker: str) -> re.Pattern[str]:
    return re.compile(re.escape(marker) + r"(.*)$", re.MULTILINE)


def _mask_body(pattern: re.Pattern[str], text: str, filler: str) -> str:
    def _replace(match: re.Match[str]) -> str:
        start = match.start(1) - match.start(0)
        whole = match.group(0)
        return whole[:start] + filler * len(match.group(1)) + whole[match.end(1) - match.start(0):]

    return pattern.sub(_replace, text)


def mask_literals(
    text: str,
    *,
    filler: str = DEFAULT_FILLER,
    comment_marker: str = DEFAULT_COMMENT_MARKER,
) -> str:
    if len(filler) != 1:
        raise ValueError("filler must be a single character")
    masked = _mask_body(_DOUBLE_QUOTED_RE, text, filler)
    masked = _mask_body(_SINGLE_QUOTED_RE, masked, filler)
    if comment_marker:
        masked = _mask_body(_comment_re(comment_marker), masked, filler)
    return masked
