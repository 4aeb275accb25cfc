"""Conversions between ycmd payloads and LSP types.

ycmd counts lines from 1 and columns as 1-based UTF-8 byte offsets; LSP counts
both from 0 and columns in characters.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, List, Optional

from lsprotocol.types import (
    CodeAction,
    CodeActionKind,
    CompletionItem,
    CompletionItemKind,
    Diagnostic,
    DiagnosticSeverity,
    Hover,
    Location,
    MarkupContent,
    MarkupKind,
    ParameterInformation,
    Position,
    Range,
    SignatureHelp,
    SignatureInformation,
    TextEdit,
    WorkspaceEdit,
)

from ycmls.schema import CandidateDTO, DiagnosticDTO, FixItDTO, LocationDTO, RangeDTO

if TYPE_CHECKING:
    from pygls.workspace import TextDocument

    from ycmls.signature_help import SignatureHelpResult

DIAGNOSTIC_SOURCE = "ycmd"

COMPLETION_KINDS = {
    "CLASS": CompletionItemKind.Class,
    "STRUCT": CompletionItemKind.Struct,
    "ENUM": CompletionItemKind.Enum,
    "TYPE": CompletionItemKind.TypeParameter,
    "MEMBER": CompletionItemKind.Field,
    "FUNCTION": CompletionItemKind.Function,
    "METHOD": CompletionItemKind.Method,
    "VARIABLE": CompletionItemKind.Variable,
    "PARAMETER": CompletionItemKind.Variable,
    "MACRO": CompletionItemKind.Constant,
    "NAMESPACE": CompletionItemKind.Module,
    "IDENTIFIER": CompletionItemKind.Text,
    "UNKNOWN": CompletionItemKind.Text,
}

SEVERITIES = {
    "ERROR": DiagnosticSeverity.Error,
    "WARNING": DiagnosticSeverity.Warning,
    "INFORMATION": DiagnosticSeverity.Information,
    "HINT": DiagnosticSeverity.Hint,
}


def line_text(document: TextDocument, line: int) -> str:
    lines = document.lines
    if 0 <= line < len(lines):
        return lines[line]
    return ""


def to_server_position(document: TextDocument, position: Position) -> Position:
    """Convert a client position (UTF-16 code units by default) to code points."""
    if position.line >= len(document.lines):
        return Position(line=position.line, character=0)
    # The codec clamps the position it is given in place.
    server = document.position_codec.position_from_client_units(
        document.lines, Position(line=position.line, character=position.character)
    )
    return Position(line=server.line, character=server.character)


def to_client_position(document: TextDocument, position: Position) -> Position:
    return document.position_codec.position_to_client_units(document.lines, position)


def to_ycmd_column(line: str, character: int) -> int:
    return len(line[:character].encode("utf-8")) + 1


def from_ycmd_column(line: str, column_num: int) -> int:
    prefix = line.encode("utf-8")[: max(column_num - 1, 0)]
    return len(prefix.decode("utf-8", errors="ignore"))


def to_position(document: TextDocument, location: LocationDTO) -> Position:
    line = max(location.line_num - 1, 0)
    if not _same_file(document, location.filepath):
        # Other files are not in the document store; assume one byte per character.
        return Position(line=line, character=max(location.column_num - 1, 0))
    character = from_ycmd_column(line_text(document, line), location.column_num)
    return to_client_position(document, Position(line=line, character=character))


def to_range(document: TextDocument, extent: RangeDTO) -> Range:
    return Range(start=to_position(document, extent.start), end=to_position(document, extent.end))


def _same_file(document: TextDocument, filepath: str) -> bool:
    if not filepath:
        return True
    return Path(filepath) == Path(document.path)


def completion_item(candidate: CandidateDTO) -> CompletionItem:
    return CompletionItem(
        label=candidate.insertion_text,
        kind=COMPLETION_KINDS.get(candidate.kind.upper(), CompletionItemKind.Text),
        detail=candidate.extra_menu_info or candidate.menu_text or None,
        documentation=candidate.detailed_info or None,
        insert_text=candidate.insertion_text,
    )


def diagnostic(document: TextDocument, dto: DiagnosticDTO) -> Diagnostic:
    if dto.location_extent is not None:
        extent = to_range(document, dto.location_extent)
    elif dto.ranges:
        extent = to_range(document, dto.ranges[0])
    else:
        start = to_position(document, dto.location)
        extent = Range(start=start, end=Position(line=start.line, character=start.character + 1))
    return Diagnostic(
        range=extent,
        message=dto.text,
        severity=SEVERITIES.get(dto.kind.upper(), DiagnosticSeverity.Error),
        source=DIAGNOSTIC_SOURCE,
    )


def diagnostics(document: TextDocument, dtos: List[DiagnosticDTO]) -> List[Diagnostic]:
    return [
        diagnostic(document, dto)
        for dto in dtos
        if _same_file(document, dto.location.filepath)
    ]


def hover(type_info: str) -> Optional[Hover]:
    text = type_info.strip()
    if not text:
        return None
    return Hover(contents=MarkupContent(kind=MarkupKind.Markdown, value=f"```\n{text}\n```"))


def locations(document: TextDocument, targets: List[LocationDTO]) -> List[Location]:
    results: List[Location] = []
    for target in targets:
        start = to_position(document, target)
        uri = document.uri if _same_file(document, target.filepath) else Path(target.filepath).as_uri()
        results.append(Location(uri=uri, range=Range(start=start, end=start)))
    return results


def code_actions(document: TextDocument, fixits: List[FixItDTO]) -> List[CodeAction]:
    actions: List[CodeAction] = []
    for fixit in fixits:
        changes: dict[str, List[TextEdit]] = {}
        for chunk in fixit.chunks:
            filepath = chunk.range.start.filepath
            uri = document.uri if _same_file(document, filepath) else Path(filepath).as_uri()
            changes.setdefault(uri, []).append(
                TextEdit(range=to_range(document, chunk.range), new_text=chunk.replacement_text)
            )
        if not changes:
            continue
        actions.append(
            CodeAction(
                title=fixit.text or "Apply FixIt",
                kind=CodeActionKind.QuickFix,
                edit=WorkspaceEdit(changes=changes),
            )
        )
    return actions


def signature_help(result: SignatureHelpResult) -> SignatureHelp:
    signatures = [
        SignatureInformation(
            label=signature.label,
            parameters=[ParameterInformation(label=label) for label in signature.parameters],
        )
        for signature in result.signatures
    ]
    return SignatureHelp(
        signatures=signatures,
        active_signature=0 if signatures else None,
        active_parameter=result.active_parameter,
    )
