"""Layer 3: React component fixes (list keys, hook imports, image alt text)."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from tree_sitter import Node

from ..parsing import ParsedSource, TextEdit, iter_nodes, iter_nodes_of_type, parse_source
from .base import LayerOutput, LayerPlugin, TransformOptions

REACT_HOOKS: Tuple[str, ...] = (
    "useState",
    "useEffect",
    "useContext",
    "useReducer",
    "useCallback",
    "useMemo",
    "useRef",
    "useLayoutEffect",
    "useId",
    "useTransition",
    "useDeferredValue",
)

_HOOK_CALL = re.compile(r"(?<![\w$.])(" + "|".join(REACT_HOOKS) + r")\s*\(")
_REACT_IMPORT = re.compile(
    r"^import\s+(?!type\b)(?:(?P<default>[A-Za-z_$][\w$]*)\s*,?\s*)?(?:\{(?P<named>[^}]*)\}\s*)?"
    r"from\s+(?P<quote>['\"])react(?P=quote)[ \t]*;?",
    re.MULTILINE,
)
_DIRECTIVE = re.compile(r"^\s*(['\"])use (?:client|server)\1;?[ \t]*\n")
_MAP_CALLBACK = re.compile(
    r"\.map\(\s*(?:\((?P<params>[^()]*)\)|(?P<param>[A-Za-z_$][\w$]*))\s*=>\s*(?:\(\s*)?"
    r"<(?P<tag>[A-Za-z][\w.]*)(?P<attrs>(?:\s[^<>]*?)?)(?P<close>\s*/?)>"
)
_IMG_TAG = re.compile(r"<img\b(?P<attrs>[^<>]*?)(?P<close>\s*/?)>")
_IDENTIFIER = re.compile(r"[A-Za-z_$][\w$]*")


@dataclass(frozen=True)
class _ReactImport:
    start: int
    end: int
    default: Optional[str]
    named: Tuple[str, ...]
    quote: str


class ComponentsLayer(LayerPlugin):
    """Adds missing ``key`` props, React hook imports and ``alt`` attributes."""

    layer_id = 3

    def ast_transform(self, code: str, file_path: Optional[str], options: TransformOptions) -> LayerOutput:
        parsed = parse_source(code, file_path)
        key_edits = _key_edits(parsed)
        alt_edits = _alt_edits(parsed)
        edits = key_edits + alt_edits

        used = sorted({parsed.text(node.child_by_field_name("function")) for node in _hook_calls(parsed)})
        existing = _react_import_from_tree(parsed)
        missing = _missing_hooks(code, used, existing)
        import_edit = _hook_import_edit(code, missing, existing)
        if import_edit is not None:
            edits.append(_byte_edit(code, import_edit))

        if not edits:
            return LayerOutput(code=code, changes=0)
        return LayerOutput(code=parsed.apply(edits), improvements=_describe(len(key_edits), missing, len(alt_edits)))

    def regex_transform(self, code: str, file_path: Optional[str], options: TransformOptions) -> LayerOutput:
        key_count = 0

        def _add_key(match: re.Match) -> str:
            nonlocal key_count
            if re.search(r"(?<![\w-])key\s*=", match.group("attrs") or ""):
                return match.group(0)
            params = match.group("params")
            expression = _key_expression(_split_params(params) if params is not None else [match.group("param")])
            if expression is None:
                return match.group(0)
            key_count += 1
            offset = match.end("tag") - match.start()
            return f"{match.group(0)[:offset]} key={{{expression}}}{match.group(0)[offset:]}"

        fixed = _MAP_CALLBACK.sub(_add_key, code)

        alt_count = 0

        def _add_alt(match: re.Match) -> str:
            nonlocal alt_count
            attrs = match.group("attrs")
            if re.search(r"(?<![\w-])alt\s*=", attrs) or "{..." in attrs:
                return match.group(0)
            alt_count += 1
            return f'<img{attrs} alt=""{match.group("close")}>'

        fixed = _IMG_TAG.sub(_add_alt, fixed)

        used = sorted(set(_HOOK_CALL.findall(fixed)))
        existing = _react_import_from_text(fixed)
        missing = _missing_hooks(fixed, used, existing)
        import_edit = _hook_import_edit(fixed, missing, existing)
        if import_edit is not None:
            start, end, replacement = import_edit
            fixed = fixed[:start] + replacement + fixed[end:]
        return LayerOutput(code=fixed, improvements=_describe(key_count, missing, alt_count))


def _describe(keys: int, hooks: Sequence[str], images: int) -> List[str]:
    improvements = []
    if keys:
        improvements.append(f"Added {keys} missing key prop{'s' if keys != 1 else ''}")
    if hooks:
        improvements.append(f"Added React hook imports: {', '.join(hooks)}")
    if images:
        improvements.append(f"Added alt text to {images} image{'s' if images != 1 else ''}")
    return improvements


def _split_params(params: str) -> List[Optional[str]]:
    names: List[Optional[str]] = []
    for raw in params.split(","):
        raw = raw.strip()
        if not raw:
            continue
        if raw.startswith(("{", "[")):
            names.append(None)
            continue
        match = _IDENTIFIER.match(raw)
        names.append(match.group(0) if match else None)
    return names


def _key_expression(params: Sequence[Optional[str]]) -> Optional[str]:
    """Prefer the index parameter; otherwise key on ``item.id`` with the item as fallback."""
    if len(params) > 1 and params[1]:
        return params[1]
    if params and params[0]:
        return f"{params[0]}.id ?? {params[0]}"
    return None


# AST helpers


def _callback_params(parsed: ParsedSource, callback: Node) -> List[Optional[str]]:
    single = callback.child_by_field_name("parameter")
    if single is not None:
        return [parsed.text(single)]
    formal = callback.child_by_field_name("parameters")
    if formal is None:
        return []
    names: List[Optional[str]] = []
    for param in formal.named_children:
        target = param
        if param.type in {"required_parameter", "optional_parameter"}:
            target = param.child_by_field_name("pattern") or param
        if target.type == "assignment_pattern":
            target = target.child_by_field_name("left") or target
        names.append(parsed.text(target) if target.type == "identifier" else None)
    return names


def _unwrap(node: Optional[Node]) -> Optional[Node]:
    while node is not None and node.type == "parenthesized_expression" and node.named_children:
        node = node.named_children[0]
    return node


def _returned_elements(callback: Node) -> List[Node]:
    body = callback.child_by_field_name("body")
    if body is None:
        return []
    if body.type != "statement_block":
        candidates = [_unwrap(body)]
    else:
        candidates = [
            _unwrap(statement.named_children[0] if statement.named_children else None)
            for statement in body.named_children
            if statement.type == "return_statement"
        ]
    return [node for node in candidates if node is not None and node.type in {"jsx_element", "jsx_self_closing_element"}]


def _opening_tag(element: Node) -> Optional[Node]:
    if element.type == "jsx_self_closing_element":
        return element
    return element.child_by_field_name("open_tag")


def _has_attribute(parsed: ParsedSource, tag: Node, name: str) -> bool:
    for child in tag.named_children:
        if child.type == "jsx_expression":
            # Spread props may carry the attribute.
            return True
        if child.type == "jsx_attribute" and child.named_children and parsed.text(child.named_children[0]) == name:
            return True
    return False


def _key_edits(parsed: ParsedSource) -> List[TextEdit]:
    edits = []
    for call in iter_nodes_of_type(parsed.root, "call_expression"):
        function = call.child_by_field_name("function")
        arguments = call.child_by_field_name("arguments")
        if function is None or arguments is None or function.type != "member_expression":
            continue
        if parsed.text(function.child_by_field_name("property")) != "map" or not arguments.named_children:
            continue
        callback = arguments.named_children[0]
        if callback.type not in {"arrow_function", "function_expression", "function"}:
            continue
        expression = _key_expression(_callback_params(parsed, callback))
        if expression is None:
            continue
        for element in _returned_elements(callback):
            tag = _opening_tag(element)
            name = tag.child_by_field_name("name") if tag is not None else None
            if tag is None or name is None or _has_attribute(parsed, tag, "key"):
                continue
            edits.append(TextEdit(name.end_byte, name.end_byte, f" key={{{expression}}}"))
    return edits


def _alt_edits(parsed: ParsedSource) -> List[TextEdit]:
    edits = []
    for tag in iter_nodes_of_type(parsed.root, ("jsx_opening_element", "jsx_self_closing_element")):
        name = tag.child_by_field_name("name")
        if name is None or parsed.text(name) != "img" or _has_attribute(parsed, tag, "alt"):
            continue
        edits.append(TextEdit(name.end_byte, name.end_byte, ' alt=""'))
    return edits


def _hook_calls(parsed: ParsedSource) -> List[Node]:
    calls = []
    for call in iter_nodes_of_type(parsed.root, "call_expression"):
        function = call.child_by_field_name("function")
        if function is not None and function.type == "identifier" and parsed.text(function) in REACT_HOOKS:
            calls.append(call)
    return calls


def _react_import_from_tree(parsed: ParsedSource) -> Optional[_ReactImport]:
    for statement in parsed.root.named_children:
        if statement.type != "import_statement":
            continue
        source = statement.child_by_field_name("source")
        if source is None or parsed.text(source)[1:-1] != "react":
            continue
        if parsed.text(statement).startswith("import type"):
            continue
        clause = next((child for child in statement.named_children if child.type == "import_clause"), None)
        if clause is None:
            continue
        default = None
        named: List[str] = []
        for part in clause.named_children:
            if part.type == "identifier":
                default = parsed.text(part)
            elif part.type == "named_imports":
                named.extend(
                    parsed.text(spec) for spec in iter_nodes(part) if spec.type == "import_specifier"
                )
            else:
                # Namespace imports are left alone.
                break
        else:
            start = len(parsed.source[: statement.start_byte].decode("utf-8"))
            end = len(parsed.source[: statement.end_byte].decode("utf-8"))
            return _ReactImport(start, end, default, tuple(named), parsed.text(source)[0])
    return None


def _react_import_from_text(code: str) -> Optional[_ReactImport]:
    match = _REACT_IMPORT.search(code)
    if match is None or (match.group("default") is None and match.group("named") is None):
        return None
    named = tuple(part.strip() for part in (match.group("named") or "").split(",") if part.strip())
    return _ReactImport(match.start(), match.end(), match.group("default"), named, match.group("quote"))


def _imported_name(specifier: str) -> str:
    # "useState as useLocalState" binds the alias.
    return specifier.split(" as ")[-1].strip()


def _missing_hooks(code: str, used: Sequence[str], existing: Optional[_ReactImport]) -> List[str]:
    imported = {_imported_name(spec) for spec in existing.named} if existing else set()
    missing = []
    for hook in used:
        if hook in imported:
            continue
        if re.search(rf"\b(?:function|const|let|var)\s+{hook}\b|import\s+{hook}\b|\bas\s+{hook}\b", code):
            continue
        missing.append(hook)
    return missing


def _hook_import_edit(
    code: str, missing: Sequence[str], existing: Optional[_ReactImport]
) -> Optional[Tuple[int, int, str]]:
    """Return a ``(start, end, replacement)`` character edit that imports ``missing``."""
    if not missing:
        return None
    if existing is not None:
        names = list(existing.named) + list(missing)
        default = f"{existing.default}, " if existing.default else ""
        statement = f"import {default}{{ {', '.join(names)} }} from {existing.quote}react{existing.quote};"
        return existing.start, existing.end, statement
    statement = f"import {{ {', '.join(missing)} }} from 'react';\n"
    directive = _DIRECTIVE.match(code)
    position = directive.end() if directive else 0
    return position, position, statement


def _byte_edit(code: str, edit: Tuple[int, int, str]) -> TextEdit:
    start, end, replacement = edit
    return TextEdit(len(code[:start].encode("utf-8")), len(code[:end].encode("utf-8")), replacement)


__all__ = ["ComponentsLayer", "REACT_HOOKS"]
