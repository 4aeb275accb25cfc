from ycmls.scanning.masking import DEFAULT_COMMENT_MARKER, DEFAULT_FILLER, mask_literals
from ycmls.scanning.scope import (
    SCOPE_PAIRS,
    count_top_level_commas,
    find_enclosing_paren,
    skip_scope,
)

__all__ = [
    "DEFAULT_COMMENT_MARKER",
    "DEFAULT_FILLER",
    "SCOPE_PAIRS",
    "count_top_level_commas",
    "find_enclosing_paren",
    "mask_literals",
    "skip_scope",
]
