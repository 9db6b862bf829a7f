from __future__ import annotations

import pytest

from layerfix.parsing import (
    SyntaxTreeError,
    TextEdit,
    apply_edits,
    iter_nodes_of_type,
    language_for_path,
    parse_source,
)


@pytest.mark.parametrize(
    ("path", "language"),
    [
        ("src/a.jsx", "javascript"),
        ("lib/util.mjs", "javascript"),
        ("src/types.ts", "typescript"),
        ("app/page.tsx", "tsx"),
        ("tsconfig.json", "json"),
        ("README", "tsx"),
        (None, "tsx"),
    ],
)
def test_language_for_path(path, language: str) -> None:
    assert language_for_path(path) == language


def test_parse_source_reports_error_position() -> None:
    with pytest.raises(SyntaxTreeError) as excinfo:
        parse_source("const a = 1;\nconst b = (;\n", "a.js")

    assert excinfo.value.line == 2


def test_parsed_source_text_and_traversal() -> None:
    parsed = parse_source("import a from 'a';\nconst b = a;\n", "a.js")

    imports = list(iter_nodes_of_type(parsed.root, "import_statement"))
    assert [parsed.text(node) for node in imports] == ["import a from 'a';"]
    assert parsed.text(None) == ""


def test_apply_edits_works_on_utf8_byte_offsets() -> None:
    source = "const s = 'é';\nvar x = 1;\n".encode("utf-8")
    start = source.index(b"var")

    updated = apply_edits(source, [TextEdit(start, start + 3, "let")])

    assert updated == "const s = 'é';\nlet x = 1;\n"


def test_apply_edits_rejects_overlaps() -> None:
    with pytest.raises(ValueError, match="Overlapping"):
        apply_edits(b"abcdef", [TextEdit(0, 3, "x"), TextEdit(2, 4, "y")])


def test_insertions_at_same_offset_are_allowed() -> None:
    assert apply_edits(b"ab", [TextEdit(1, 1, "-"), TextEdit(2, 2, "!")]) == "a-b!"
