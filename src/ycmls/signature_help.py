"""Signature help built from the enclosing call around the cursor.

The call is located with a bracket scan over masked text, its function name is
resolved to a completion candidate, and the candidate's documentation is read
as one signature per line (``name(params)``), blocks separated by blank lines.
Only the first block is used.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional, Protocol

from lsprotocol.types import Position

from ycmls.scanning import count_top_level_commas, find_enclosing_paren, mask_literals
from ycmls.translate import to_client_position

if TYPE_CHECKING:
    from pygls.workspace import TextDocument

    from ycmls.schema import CandidateDTO

logger = logging.getLogger(__name__)

_BLANK_LINE_RE = re.compile(r"\n[ \t]*\n")


class CompletionLookup(Protocol):
    async def exact_match_completion(
        self, document: TextDocument, position: Position
    ) -> Optional[CandidateDTO]: ...


@dataclass(frozen=True)
class SignatureDescriptor:
    label: str
    parameters: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class SignatureHelpResult:
    signatures: List[SignatureDescriptor]
    active_parameter: int


def parse_signature_line(line: str) -> SignatureDescriptor:
    open_index = line.index("(")
    close_index = line.rindex(")")
    if close_index < open_index:
        raise ValueError(f"unbalanced signature: {line!r}")
    inner = line[open_index + 1 : close_index].strip()
    # Plain split: commas nested in template or array types are not protected.
    parameters = [part.strip() for part in inner.split(",")] if inner else []
    return SignatureDescriptor(label=line, parameters=parameters)


def parse_signatures(documentation: str) -> List[SignatureDescriptor]:
    block = _BLANK_LINE_RE.split(documentation.strip(), maxsplit=1)[0]
    return [
        parse_signature_line(line.strip())
        for line in block.splitlines()
        if line.strip()
    ]


def _safe_parse_signatures(documentation: str) -> List[SignatureDescriptor]:
    try:
        return parse_signatures(documentation)
    except ValueError as exc:
        logger.debug("Could not parse signatures from documentation: %s", exc)
        return []


def call_name_end(masked: str, open_paren: int) -> int | None:
    """Return the end offset of the identifier called at ``open_paren``."""
    end = open_paren
    while end > 0 and masked[end - 1].isspace():
        end -= 1
    start = end
    while start > 0 and (masked[start - 1].isalnum() or masked[start - 1] == "_"):
        start -= 1
    if start == end or masked[start].isdigit():
        return None
    return end


def active_parameter(masked: str, open_paren: int, offset: int) -> int:
    return count_top_level_commas(masked, open_paren + 2, offset)


async def signature_help(
    document: TextDocument, position: Position, lookup: CompletionLookup
) -> Optional[SignatureHelpResult]:
    text = document.source
    offset = min(document.offset_at_position(position), len(text))
    masked = mask_literals(text[:offset])
    open_paren = find_enclosing_paren(masked, offset)
    if open_paren is None:
        return None
    name_end = call_name_end(masked, open_paren)
    if name_end is None:
        return None
    name_position = to_client_position(document, _offset_to_position(text, name_end))
    candidate = await lookup.exact_match_completion(document, name_position)
    if candidate is None:
        return None
    return SignatureHelpResult(
        signatures=_safe_parse_signatures(candidate.detailed_info),
        active_parameter=active_parameter(masked, open_paren, offset),
    )


def _offset_to_position(text: str, offset: int) -> Position:
    line = text.count("\n", 0, offset)
    line_start = text.rfind("\n", 0, offset) + 1
    return Position(line=line, character=offset - line_start)
