from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
for entry in (ROOT, ROOT / "src"):
    if str(entry) not in sys.path:
        sys.path.insert(0, str(entry))


import pytest
from pygls.workspace import TextDocument


@pytest.fixture
def make_document():
    def _make(source: str, *, name: str = "sample.cpp", language_id: str = "cpp") -> TextDocument:
        uri = (Path("/tmp/ycmls-workspace") / name).as_uri()
        return TextDocument(uri, source=source, language_id=language_id)

    return _make
