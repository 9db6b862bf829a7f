"""Layer 6: test scaffolding and duplicate declaration cleanup."""

from __future__ import annotations

import re
from pathlib import PurePosixPath
from typing import List, Optional, Set, Tuple

from ..scanning import iter_code
from .base import LayerOutput, LayerPlugin, TransformOptions

JEST_DOM_IMPORT = "import '@testing-library/jest-dom';"

_FUNCTION_START = re.compile(r"^[ \t]*(?:export\s+)?(?:async\s+)?function\s*\*?\s*([A-Za-z_$][\w$]*)\s*\(", re.MULTILINE)
_TEST_CALL = re.compile(r"(?<![\w$.])(?:describe|it|test)\s*\(")
_JEST_DOM = re.compile(r"['\"]@testing-library/jest-dom(?:/extend-expect)?['\"]")
_IMPORT_BLOCK_END = re.compile(r"^(?:import\s[^\n]*\n)+", re.MULTILINE)


class TestingLayer(LayerPlugin):
    """Removes repeated function declarations and wires up jest-dom matchers."""

    layer_id = 6
    __test__ = False

    def regex_transform(self, code: str, file_path: Optional[str], options: TransformOptions) -> LayerOutput:
        improvements: List[str] = []
        fixed, removed = remove_duplicate_functions(code)
        if removed:
            improvements.append(f"Removed {removed} duplicate function declaration{'s' if removed != 1 else ''}")

        if is_test_file(fixed, file_path) and "toBeInTheDocument" in fixed and not _JEST_DOM.search(fixed):
            fixed = _insert_after_imports(fixed, JEST_DOM_IMPORT)
            improvements.append("Added @testing-library/jest-dom import")
        return LayerOutput(code=fixed, improvements=improvements)


def is_test_file(code: str, file_path: Optional[str]) -> bool:
    if file_path:
        path = PurePosixPath(file_path.replace("\\", "/"))
        if "__tests__" in path.parts or re.search(r"\.(?:test|spec)\.[cm]?[jt]sx?$", path.name):
            return True
    return bool(_TEST_CALL.search(code))


def remove_duplicate_functions(code: str) -> Tuple[str, int]:
    """Drop later copies of byte-identical top-level function declarations."""
    seen: Set[str] = set()
    spans: List[Tuple[int, int]] = []
    position = 0
    while True:
        match = _FUNCTION_START.search(code, position)
        if match is None:
            break
        body_open = code.find("{", match.end())
        if body_open < 0:
            break
        body_close = _matching_brace(code, body_open)
        if body_close is None:
            break
        declaration = code[match.start() : body_close + 1]
        normalised = re.sub(r"\s+", " ", declaration.strip())
        if normalised in seen:
            end = body_close + 1
            if code[end : end + 1] == "\n":
                end += 1
            spans.append((match.start(), end))
        else:
            seen.add(normalised)
        position = body_close + 1

    if not spans:
        return code, 0
    pieces = []
    cursor = 0
    for start, end in spans:
        pieces.append(code[cursor:start])
        cursor = end
    pieces.append(code[cursor:])
    return "".join(pieces), len(spans)


def _matching_brace(code: str, open_index: int) -> Optional[int]:
    depth = 0
    for index, char in iter_code(code, open_index):
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return index
    return None


def _insert_after_imports(code: str, statement: str) -> str:
    block = _IMPORT_BLOCK_END.match(code)
    if block is None:
        return f"{statement}\n{code}"
    return f"{code[: block.end()]}{statement}\n{code[block.end():]}"


__all__ = ["JEST_DOM_IMPORT", "TestingLayer", "is_test_file", "remove_duplicate_functions"]
