from __future__ import annotations

import asyncio

from lsprotocol.types import Position

from ycmls.schema import CandidateDTO
from ycmls.signature_help import (
    SignatureDescriptor,
    call_name_end,
    parse_signatures,
    signature_help,
)
from ycmls.ycmd import identifier_before


class _FakeLookup:
    def __init__(self, documentation: dict[str, str]) -> None:
        self.documentation = documentation
        self.positions: list[Position] = []

    async def exact_match_completion(self, document, position):
        self.positions.append(position)
        name = identifier_before(document, position)
        if name not in self.documentation:
            return None
        return CandidateDTO(insertion_text=name, detailed_info=self.documentation[name])


def _help(document, position, lookup):
    return asyncio.run(signature_help(document, position, lookup))


def test_signature_help_for_open_call(make_document) -> None:
    document = make_document("result = compute(1, 2")
    lookup = _FakeLookup({"compute": "compute(int a, int b)\n\ndoes math"})
    result = _help(document, Position(line=0, character=21), lookup)
    assert result is not None
    assert result.signatures == [
        SignatureDescriptor(label="compute(int a, int b)", parameters=["int a", "int b"])
    ]
    assert result.active_parameter == 1
    assert lookup.positions == [Position(line=0, character=16)]


def test_first_argument_is_active_right_after_paren(make_document) -> None:
    document = make_document("compute(")
    lookup = _FakeLookup({"compute": "compute(int a, int b)"})
    result = _help(document, Position(line=0, character=8), lookup)
    assert result is not None
    assert result.active_parameter == 0


def test_no_enclosing_call_returns_none(make_document) -> None:
    document = make_document("value = compute(1, 2) + 3")
    lookup = _FakeLookup({"compute": "compute(int a, int b)"})
    assert _help(document, Position(line=0, character=25), lookup) is None
    assert lookup.positions == []


def test_unknown_function_returns_none(make_document) -> None:
    document = make_document("mystery(1, ")
    assert _help(document, Position(line=0, character=11), _FakeLookup({})) is None


def test_call_without_name_returns_none(make_document) -> None:
    document = make_document("x = (1, ")
    lookup = _FakeLookup({})
    assert _help(document, Position(line=0, character=8), lookup) is None
    assert lookup.positions == []


def test_commas_inside_strings_are_not_counted(make_document) -> None:
    document = make_document('log("a, b", x')
    lookup = _FakeLookup({"log": "log(const char *fmt, int value)"})
    result = _help(document, Position(line=0, character=13), lookup)
    assert result is not None
    assert result.active_parameter == 1


def test_nested_call_resolves_to_outer_function(make_document) -> None:
    document = make_document("outer(inner(1, 2), 3")
    lookup = _FakeLookup({"outer": "outer(int x, int y)", "inner": "inner(int a, int b)"})
    result = _help(document, Position(line=0, character=20), lookup)
    assert result is not None
    assert result.signatures[0].label == "outer(int x, int y)"
    assert result.active_parameter == 1


def test_cursor_inside_nested_call_resolves_to_inner_function(make_document) -> None:
    document = make_document("outer(inner(1, ")
    lookup = _FakeLookup({"outer": "outer(int x, int y)", "inner": "inner(int a, int b)"})
    result = _help(document, Position(line=0, character=15), lookup)
    assert result is not None
    assert result.signatures[0].label == "inner(int a, int b)"
    assert result.active_parameter == 1


def test_call_spanning_lines(make_document) -> None:
    document = make_document("x = f(a,\n  b, c")
    lookup = _FakeLookup({"f": "f(int a, int b, int c)"})
    result = _help(document, Position(line=1, character=6), lookup)
    assert result is not None
    assert result.active_parameter == 2
    assert lookup.positions == [Position(line=0, character=5)]


def test_whitespace_between_name_and_paren(make_document) -> None:
    document = make_document("compute (1")
    lookup = _FakeLookup({"compute": "compute(int a, int b)"})
    result = _help(document, Position(line=0, character=10), lookup)
    assert result is not None
    assert lookup.positions == [Position(line=0, character=7)]


def test_unparseable_documentation_still_reports_active_parameter(make_document) -> None:
    document = make_document("compute(1, 2, ")
    lookup = _FakeLookup({"compute": "Computes things."})
    result = _help(document, Position(line=0, character=14), lookup)
    assert result is not None
    assert result.signatures == []
    assert result.active_parameter == 2


def test_overloads_come_from_first_block_only() -> None:
    documentation = "max(int a, int b)\nmax(double a, double b)\n\nReturns the larger.\nmax(x)"
    signatures = parse_signatures(documentation)
    assert [signature.label for signature in signatures] == [
        "max(int a, int b)",
        "max(double a, double b)",
    ]
    assert signatures[1].parameters == ["double a", "double b"]


def test_empty_parameter_list() -> None:
    assert parse_signatures("void reset()") == [
        SignatureDescriptor(label="void reset()", parameters=[])
    ]


def test_parameter_split_is_not_bracket_aware() -> None:
    (signature,) = parse_signatures("pair(std::map<int, int> m, int n)")
    assert signature.parameters == ["std::map<int", "int> m", "int n"]


def test_call_name_end() -> None:
    assert call_name_end("foo(", 3) == 3
    assert call_name_end("foo  (", 5) == 3
    assert call_name_end("1 + (", 4) is None
    assert call_name_end("(", 0) is None


def test_positions_count_utf16_units_before_the_call(make_document) -> None:
    document = make_document('x = "😀"; compute(1, ')
    lookup = _FakeLookup({"compute": "compute(int a, int b)"})
    result = _help(document, Position(line=0, character=21), lookup)
    assert result is not None
    assert result.active_parameter == 1
    assert lookup.positions == [Position(line=0, character=17)]
