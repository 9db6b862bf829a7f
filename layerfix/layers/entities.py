"""Layer 2: HTML entity cleanup and legacy pattern modernisation."""

from __future__ import annotations

import re
from typing import Dict, List, Optional, Set

from tree_sitter import Node

from ..parsing import ParsedSource, TextEdit, iter_nodes, iter_nodes_of_type, parse_source
from .base import LayerOutput, LayerPlugin, TransformOptions

HTML_ENTITIES: Dict[str, str] = {
    "quot": '"',
    "#x27": "'",
    "#39": "'",
    "apos": "'",
    "amp": "&",
    "lt": "<",
    "gt": ">",
    "nbsp": " ",
    "copy": "\u00a9",
    "reg": "\u00ae",
    "trade": "\u2122",
    "hellip": "\u2026",
    "mdash": "\u2014",
    "ndash": "\u2013",
}
# JSX text may not contain raw angle brackets or a bare "&"; &nbsp; stays meaningful.
_JSX_TEXT_ENTITIES = {name: char for name, char in HTML_ENTITIES.items() if name not in {"lt", "gt", "nbsp", "amp"}}

_ENTITY = re.compile(r"&(" + "|".join(re.escape(name) for name in HTML_ENTITIES) + r");")
_SIMPLE_VAR = re.compile(r"^([ \t]*)var(\s+)([A-Za-z_$][\w$]*)(\s*=[^,\n]*)$", re.MULTILINE)
_FRAGMENT_OPEN = re.compile(r"<React\.Fragment>")
_FRAGMENT_CLOSE = re.compile(r"</React\.Fragment>")
_FRAGMENT_WITH_PROPS = re.compile(r"<React\.Fragment\s+[\w{]")
_FRAGMENT_TAG = re.compile(r"^<\s*React\.Fragment\s*>$")

_ASSIGNMENT_TYPES = ("assignment_expression", "augmented_assignment_expression")


def unescape_entities(
    text: str,
    table: Optional[Dict[str, str]] = None,
    *,
    delimiter: Optional[str] = None,
    escapable: bool = True,
) -> str:
    """Replace known entities in one pass so ``&amp;lt;`` becomes ``&lt;``, not ``<``."""
    entities = HTML_ENTITIES if table is None else table

    def _replace(match: re.Match) -> str:
        char = entities.get(match.group(1))
        if char is None:
            return match.group(0)
        if delimiter is not None and char == delimiter:
            return "\\" + char if escapable else match.group(0)
        return char

    return _ENTITY.sub(_replace, text)


class EntityCleanupLayer(LayerPlugin):
    """Unescapes HTML entities, replaces ``var`` and shortens ``React.Fragment``."""

    layer_id = 2

    def ast_transform(self, code: str, file_path: Optional[str], options: TransformOptions) -> LayerOutput:
        parsed = parse_source(code, file_path)
        edits: List[TextEdit] = []
        entity_edits = _entity_edits(parsed)
        var_edits = _var_edits(parsed)
        fragment_edits = _fragment_edits(parsed)
        edits.extend(entity_edits)
        edits.extend(var_edits)
        edits.extend(fragment_edits)
        if not edits:
            return LayerOutput(code=code, changes=0)
        return LayerOutput(
            code=parsed.apply(edits),
            improvements=_describe(len(entity_edits), len(var_edits), len(fragment_edits) // 2),
        )

    def regex_transform(self, code: str, file_path: Optional[str], options: TransformOptions) -> LayerOutput:
        entity_count = len(_ENTITY.findall(code))
        fixed = unescape_entities(code)

        var_count = 0

        def _replace_var(match: re.Match) -> str:
            nonlocal var_count
            indent, space, name, rest = match.groups()
            if _is_reassigned_text(fixed, name):
                return match.group(0)
            var_count += 1
            return f"{indent}const{space}{name}{rest}"

        fixed = _SIMPLE_VAR.sub(_replace_var, fixed)

        fragment_count = 0
        opens = len(_FRAGMENT_OPEN.findall(fixed))
        if opens and opens == len(_FRAGMENT_CLOSE.findall(fixed)) and not _FRAGMENT_WITH_PROPS.search(fixed):
            fixed = _FRAGMENT_CLOSE.sub("</>", _FRAGMENT_OPEN.sub("<>", fixed))
            fragment_count = opens
        return LayerOutput(code=fixed, improvements=_describe(entity_count, var_count, fragment_count))


def _describe(entities: int, variables: int, fragments: int) -> List[str]:
    improvements = []
    if entities:
        improvements.append(f"Unescaped {entities} HTML entit{'y' if entities == 1 else 'ies'}")
    if variables:
        improvements.append(f"Converted {variables} var declaration{'s' if variables != 1 else ''}")
    if fragments:
        improvements.append("Shortened React.Fragment to <>")
    return improvements


def _entity_edits(parsed: ParsedSource) -> List[TextEdit]:
    edits = []
    for node in iter_nodes_of_type(parsed.root, ("string_fragment", "jsx_text", "html_character_reference")):
        original = parsed.text(node)
        if "&" not in original:
            continue
        container = node.parent
        if node.type != "string_fragment" and (container is None or container.type != "string"):
            replacement = unescape_entities(original, _JSX_TEXT_ENTITIES)
        elif container is not None and container.type == "template_string":
            replacement = unescape_entities(original, delimiter="`")
        else:
            opening = parsed.text(container)[:1] if container is not None else ""
            in_jsx_attribute = container is not None and container.parent is not None and container.parent.type == "jsx_attribute"
            replacement = unescape_entities(
                original,
                delimiter=opening if opening in {"'", '"'} else None,
                escapable=not in_jsx_attribute,
            )
        if replacement != original:
            edits.append(TextEdit(node.start_byte, node.end_byte, replacement))
    return edits


def _var_edits(parsed: ParsedSource) -> List[TextEdit]:
    declarations = list(iter_nodes_of_type(parsed.root, "variable_declaration"))
    if not declarations:
        return []
    reassigned = _assigned_names(parsed)
    declared_count: Dict[str, int] = {}
    for declaration in declarations:
        for name in _declared_names(parsed, declaration):
            declared_count[name] = declared_count.get(name, 0) + 1

    edits = []
    for declaration in declarations:
        keyword = declaration.children[0] if declaration.children else None
        if keyword is None or keyword.type != "var":
            continue
        names = _declared_names(parsed, declaration)
        if not names or any(declared_count.get(name, 0) > 1 for name in names):
            continue
        parent = declaration.parent
        in_loop_head = parent is not None and parent.type in {"for_statement", "for_in_statement"}
        uninitialised = any(
            declarator.child_by_field_name("value") is None
            for declarator in declaration.named_children
            if declarator.type == "variable_declarator"
        )
        mutable = in_loop_head or uninitialised or any(name in reassigned for name in names)
        edits.append(TextEdit(keyword.start_byte, keyword.end_byte, "let" if mutable else "const"))
    return edits


def _declared_names(parsed: ParsedSource, declaration: Node) -> List[str]:
    names = []
    for declarator in declaration.named_children:
        if declarator.type != "variable_declarator":
            continue
        target = declarator.child_by_field_name("name")
        if target is None:
            continue
        if target.type == "identifier":
            names.append(parsed.text(target))
        else:
            names.extend(
                parsed.text(node)
                for node in iter_nodes(target)
                if node.type in {"identifier", "shorthand_property_identifier_pattern"}
            )
    return names


def _assigned_names(parsed: ParsedSource) -> Set[str]:
    names: Set[str] = set()
    for node in iter_nodes_of_type(parsed.root, _ASSIGNMENT_TYPES + ("update_expression",)):
        target = node.child_by_field_name("argument" if node.type == "update_expression" else "left")
        if target is not None and target.type == "identifier":
            names.add(parsed.text(target))
    return names


def _is_reassigned_text(code: str, name: str) -> bool:
    escaped = re.escape(name)
    assignments = re.findall(rf"(?<![\w$.]){escaped}\s*(?:[-+*/%&|^]|\*\*|<<|>>>?|\?\?|&&|\|\|)?=(?![=>])", code)
    updates = re.search(rf"(?:\+\+|--)\s*{escaped}\b|(?<![\w$.]){escaped}\s*(?:\+\+|--)", code)
    declarations = re.findall(rf"\b(?:var|let|const)\s+{escaped}\b", code)
    return len(assignments) > 1 or updates is not None or len(declarations) > 1


def _fragment_edits(parsed: ParsedSource) -> List[TextEdit]:
    edits = []
    for element in iter_nodes_of_type(parsed.root, "jsx_element"):
        opening = element.child_by_field_name("open_tag")
        closing = element.child_by_field_name("close_tag")
        if opening is None or closing is None:
            continue
        if not _FRAGMENT_TAG.match(parsed.text(opening)):
            continue
        edits.append(TextEdit(opening.start_byte, opening.end_byte, "<>"))
        edits.append(TextEdit(closing.start_byte, closing.end_byte, "</>"))
    return edits


__all__ = ["EntityCleanupLayer", "HTML_ENTITIES", "unescape_entities"]
