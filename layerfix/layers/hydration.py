"""Layer 4: guard browser storage access so server rendering does not crash."""

from __future__ import annotations

import re
from typing import List, Optional

from tree_sitter import Node

from ..parsing import ParsedSource, TextEdit, iter_nodes_of_type, parse_source
from .base import LayerOutput, LayerPlugin, TransformOptions

BROWSER_GUARD = 'typeof window !== "undefined"'
STORAGE_OBJECTS = ("localStorage", "sessionStorage")
_READ_METHODS = {"getItem", "key"}
_WRITE_METHODS = {"setItem", "removeItem", "clear"}
_CLIENT_ONLY_HOOKS = {"useEffect", "useLayoutEffect"}

_GUARD_TEXT = re.compile(r"typeof\s+window\s*!==?\s*['\"]undefined['\"]")
_STORAGE_CALL = re.compile(
    r"(?<![\w$.])(?P<call>(?:window\.)?(?P<store>localStorage|sessionStorage)\.(?P<method>\w+)\((?P<args>[^()]*)\))"
)


class HydrationLayer(LayerPlugin):
    """Wraps ``localStorage``/``sessionStorage`` calls in ``typeof window`` checks."""

    layer_id = 4

    def ast_transform(self, code: str, file_path: Optional[str], options: TransformOptions) -> LayerOutput:
        if not any(store in code for store in STORAGE_OBJECTS):
            return LayerOutput(code=code, changes=0)
        parsed = parse_source(code, file_path)
        edits: List[TextEdit] = []
        for call in iter_nodes_of_type(parsed.root, "call_expression"):
            method = _storage_method(parsed, call)
            if method is None or _is_guarded(parsed, call):
                continue
            edits.append(TextEdit(call.start_byte, call.end_byte, _guard(parsed.text(call), method)))
        if not edits:
            return LayerOutput(code=code, changes=0)
        return LayerOutput(code=parsed.apply(edits), improvements=_describe(len(edits)))

    def regex_transform(self, code: str, file_path: Optional[str], options: TransformOptions) -> LayerOutput:
        # Files that already guard anything are assumed to be handled by hand.
        if _GUARD_TEXT.search(code):
            return LayerOutput(code=code, changes=0)
        count = 0

        def _replace(match: re.Match) -> str:
            nonlocal count
            method = match.group("method")
            if method not in _READ_METHODS and method not in _WRITE_METHODS:
                return match.group(0)
            count += 1
            return _guard(match.group("call"), method)

        fixed = _STORAGE_CALL.sub(_replace, code)
        return LayerOutput(code=fixed, improvements=_describe(count))


def _guard(call_text: str, method: str) -> str:
    if method in _READ_METHODS:
        return f"({BROWSER_GUARD} ? {call_text} : null)"
    return f"{BROWSER_GUARD} && {call_text}"


def _describe(count: int) -> List[str]:
    if not count:
        return []
    return [f"Added SSR guards to {count} storage call{'s' if count != 1 else ''}"]


def _storage_method(parsed: ParsedSource, call: Node) -> Optional[str]:
    function = call.child_by_field_name("function")
    if function is None or function.type != "member_expression":
        return None
    target = function.child_by_field_name("object")
    if target is None:
        return None
    target_text = parsed.text(target)
    if target_text not in STORAGE_OBJECTS and target_text not in {f"window.{name}" for name in STORAGE_OBJECTS}:
        return None
    method = parsed.text(function.child_by_field_name("property"))
    if method in _READ_METHODS or method in _WRITE_METHODS:
        return method
    return None


def _is_guarded(parsed: ParsedSource, call: Node) -> bool:
    """True when an enclosing condition already checks ``typeof window`` or the call runs in an effect."""
    node = call.parent
    while node is not None:
        if node.type in {"ternary_expression", "binary_expression", "if_statement"}:
            condition = node.child_by_field_name("condition") or node.child_by_field_name("left")
            if condition is not None and _GUARD_TEXT.search(parsed.text(condition)):
                return True
        if node.type == "call_expression":
            function = node.child_by_field_name("function")
            if function is not None and parsed.text(function) in _CLIENT_ONLY_HOOKS:
                return True
        node = node.parent
    return False


__all__ = ["BROWSER_GUARD", "HydrationLayer", "STORAGE_OBJECTS"]
