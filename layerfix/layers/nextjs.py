"""Layer 5: Next.js App Router conventions."""

from __future__ import annotations

import re
from pathlib import PurePosixPath
from typing import List, Optional, Set

from tree_sitter import Node

from ..parsing import ParsedSource, TextEdit, parse_source
from .base import LayerOutput, LayerPlugin, TransformOptions

USE_CLIENT = "'use client';"

_CLIENT_HOOK = re.compile(r"(?<![\w$.])use(?:State|Effect|LayoutEffect|Reducer|Ref|Context|Callback|Memo|Transition)\s*\(")
_BROWSER_API = re.compile(r"(?<![\w$.])(?:window|document|localStorage|sessionStorage|navigator)\.")
_EVENT_HANDLER = re.compile(r"\bon[A-Z]\w*\s*=\s*\{")
_DIRECTIVE_LINE = re.compile(r"^[ \t]*(['\"])use client\1;?[ \t]*\n?", re.MULTILINE)
# "import {\n  import { X } from 'y'" left behind by an interrupted rewrite.
_BROKEN_IMPORT_OPEN = re.compile(r"import\s*\{\s*\n\s*(import\s*\{)")
_IMPORT_LINE = re.compile(r"^import\s.+$", re.MULTILINE)
_CLIENT_SUFFIXES = (".jsx", ".tsx", ".js", ".ts")


class NextJsLayer(LayerPlugin):
    """Repairs imports, removes duplicates and manages the ``'use client'`` directive."""

    layer_id = 5

    def ast_transform(self, code: str, file_path: Optional[str], options: TransformOptions) -> LayerOutput:
        parsed = parse_source(code, file_path)
        edits: List[TextEdit] = []
        improvements: List[str] = []

        duplicates = _duplicate_import_nodes(parsed)
        for node in duplicates:
            edits.append(TextEdit(node.start_byte, _line_end(parsed.source, node.end_byte), ""))
        if duplicates:
            improvements.append(f"Removed {len(duplicates)} duplicate import{'s' if len(duplicates) != 1 else ''}")

        directives = _directive_statements(parsed)
        first = next((node for node in parsed.root.named_children if node.type != "comment"), None)
        leading = first is not None and any(node.start_byte == first.start_byte for node in directives)
        if directives and not leading:
            for node in directives:
                edits.append(TextEdit(node.start_byte, _line_end(parsed.source, node.end_byte), ""))
            edits.append(TextEdit(0, 0, f"{USE_CLIENT}\n\n"))
            improvements.append("Moved 'use client' directive to the top of the file")
        elif not directives and _needs_client_directive(code, file_path):
            edits.append(TextEdit(0, 0, f"{USE_CLIENT}\n\n"))
            improvements.append("Added 'use client' directive")

        if not edits:
            return LayerOutput(code=code, changes=0)
        return LayerOutput(code=parsed.apply(edits), improvements=improvements)

    def regex_transform(self, code: str, file_path: Optional[str], options: TransformOptions) -> LayerOutput:
        improvements: List[str] = []

        repaired = _BROKEN_IMPORT_OPEN.sub(r"\1", code)
        if repaired != code:
            improvements.append("Repaired corrupted import statements")

        deduped = _dedupe_import_lines(repaired)
        if deduped != repaired:
            improvements.append("Removed duplicate imports")

        fixed = deduped
        directives = list(_DIRECTIVE_LINE.finditer(fixed))
        if directives and fixed.lstrip().split("\n", 1)[0].strip().rstrip(";") not in {"'use client'", '"use client"'}:
            fixed = USE_CLIENT + "\n\n" + _DIRECTIVE_LINE.sub("", fixed).lstrip("\n")
            improvements.append("Moved 'use client' directive to the top of the file")
        elif not directives and _needs_client_directive(fixed, file_path):
            fixed = f"{USE_CLIENT}\n\n{fixed}"
            improvements.append("Added 'use client' directive")
        return LayerOutput(code=fixed, improvements=improvements)


def _needs_client_directive(code: str, file_path: Optional[str]) -> bool:
    if file_path:
        path = PurePosixPath(file_path.replace("\\", "/"))
        # The pages router and config/test files have no client/server split.
        if "pages" in path.parts or not path.name.endswith(_CLIENT_SUFFIXES):
            return False
        if path.name.startswith("next.config.") or re.search(r"\.(?:test|spec)\.", path.name):
            return False
    if "'use server'" in code or '"use server"' in code:
        return False
    return bool(_CLIENT_HOOK.search(code) or _BROWSER_API.search(code) or _EVENT_HANDLER.search(code))


def _dedupe_import_lines(code: str) -> str:
    seen: Set[str] = set()
    lines = code.split("\n")
    kept = []
    for line in lines:
        if _IMPORT_LINE.match(line):
            normalised = re.sub(r"\s+", " ", line.strip().rstrip(";"))
            if normalised in seen:
                continue
            seen.add(normalised)
        kept.append(line)
    return "\n".join(kept)


def _duplicate_import_nodes(parsed: ParsedSource) -> List[Node]:
    seen: Set[str] = set()
    duplicates = []
    for node in parsed.root.named_children:
        if node.type != "import_statement":
            continue
        normalised = re.sub(r"\s+", " ", parsed.text(node).strip().rstrip(";"))
        if normalised in seen:
            duplicates.append(node)
        else:
            seen.add(normalised)
    return duplicates


def _directive_statements(parsed: ParsedSource) -> List[Node]:
    directives = []
    for node in parsed.root.named_children:
        if node.type != "expression_statement" or not node.named_children:
            continue
        literal = node.named_children[0]
        if literal.type == "string" and parsed.text(literal)[1:-1] == "use client":
            directives.append(node)
    return directives


def _line_end(source: bytes, end_byte: int) -> int:
    """Extend a removal through the trailing newline so no blank line is left behind."""
    if source[end_byte : end_byte + 1] == b"\n":
        return end_byte + 1
    return end_byte


__all__ = ["NextJsLayer", "USE_CLIENT"]
