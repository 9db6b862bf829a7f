"""Tree-sitter parsing and byte-range editing helpers for AST strategies."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, cast

from tree_sitter import Node, Parser, Tree
from tree_sitter_language_pack import SupportedLanguage, get_parser

_LANGUAGE_BY_SUFFIX = {
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".ts": "typescript",
    ".mts": "typescript",
    ".cts": "typescript",
    ".tsx": "tsx",
    ".json": "json",
}
_DEFAULT_LANGUAGE = "tsx"

_local = threading.local()


class SyntaxTreeError(ValueError):
    """Raised when source text does not parse cleanly."""

    def __init__(self, message: str, *, line: Optional[int] = None, column: Optional[int] = None) -> None:
        super().__init__(message)
        self.line = line
        self.column = column


@dataclass(frozen=True)
class TextEdit:
    """Replace ``source[start_byte:end_byte]`` with ``replacement``."""

    start_byte: int
    end_byte: int
    replacement: str


@dataclass
class ParsedSource:
    code: str
    source: bytes
    tree: Tree
    language: str

    @property
    def root(self) -> Node:
        return self.tree.root_node

    def text(self, node: Optional[Node]) -> str:
        if node is None:
            return ""
        return self.source[node.start_byte : node.end_byte].decode("utf-8", errors="replace")

    def apply(self, edits: Iterable[TextEdit]) -> str:
        return apply_edits(self.source, edits)


def language_for_path(file_path: Optional[str]) -> str:
    if not file_path:
        return _DEFAULT_LANGUAGE
    suffix = PurePosixPath(file_path.replace("\\", "/")).suffix.lower()
    return _LANGUAGE_BY_SUFFIX.get(suffix, _DEFAULT_LANGUAGE)


def _parser_for(language: str) -> Parser:
    # Parser instances are not safe to share between threads.
    parsers: Dict[str, Parser] | None = getattr(_local, "parsers", None)
    if parsers is None:
        parsers = {}
        _local.parsers = parsers
    parser = parsers.get(language)
    if parser is None:
        parser = get_parser(cast(SupportedLanguage, language))
        parsers[language] = parser
    return parser


def parse_source(code: str, file_path: Optional[str] = None, *, language: Optional[str] = None) -> ParsedSource:
    """Parse ``code``; raise SyntaxTreeError if the tree contains error or missing nodes."""
    resolved = language or language_for_path(file_path)
    source = code.encode("utf-8")
    tree = _parser_for(resolved).parse(source)
    parsed = ParsedSource(code=code, source=source, tree=tree, language=resolved)
    if tree.root_node.has_error:
        broken = first_error_node(tree.root_node)
        if broken is not None:
            row, column = broken.start_point
            raise SyntaxTreeError(
                f"{resolved} parse error near line {row + 1}, column {column + 1}",
                line=row + 1,
                column=column + 1,
            )
        raise SyntaxTreeError(f"{resolved} parse error")
    return parsed


def first_error_node(node: Node) -> Optional[Node]:
    for candidate in iter_nodes(node):
        if candidate.type == "ERROR" or candidate.is_missing:
            return candidate
    return None


def iter_nodes(node: Node) -> Iterator[Node]:
    """Yield ``node`` and its descendants in document order."""
    stack: List[Node] = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))


def iter_nodes_of_type(node: Node, types: Sequence[str] | str) -> Iterator[Node]:
    wanted = {types} if isinstance(types, str) else set(types)
    for candidate in iter_nodes(node):
        if candidate.type in wanted:
            yield candidate


def apply_edits(source: bytes, edits: Iterable[TextEdit]) -> str:
    """Splice non-overlapping edits into ``source`` and return the decoded result."""
    ordered = sorted(edits, key=lambda edit: (edit.start_byte, edit.end_byte))
    previous_end = -1
    for edit in ordered:
        if edit.start_byte > edit.end_byte:
            raise ValueError(f"Invalid edit range {edit.start_byte}-{edit.end_byte}")
        if edit.start_byte < previous_end:
            raise ValueError(f"Overlapping edits at byte {edit.start_byte}")
        previous_end = edit.end_byte

    buffer = bytearray(source)
    for edit in reversed(ordered):
        buffer[edit.start_byte : edit.end_byte] = edit.replacement.encode("utf-8")
    return bytes(buffer).decode("utf-8")


__all__ = [
    "ParsedSource",
    "SyntaxTreeError",
    "TextEdit",
    "apply_edits",
    "first_error_node",
    "iter_nodes",
    "iter_nodes_of_type",
    "language_for_path",
    "parse_source",
]
