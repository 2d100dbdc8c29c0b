"""
Local type resolution for template expressions.

Answers the same question as the language server oracle, "what is the type
of ``user.name`` in this component", from the owner component's source file
alone. Classes, interfaces and object type aliases declared in that file are
collected with tree-sitter; member chains are then walked against them. The
answer is rendered as a hover-style signature so the same extractor applies.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any

from ..models.inference_models import InferenceContext, InferredType, TypeSource
from .project_cache import AnalysisContextCache
from .type_extractor import TypeExtractor, split_top_level
from .typescript_parser import extract_node_text

logger = logging.getLogger(__name__)

ARRAY_SUFFIX = re.compile(r"^(.+)\[\]$")
GENERIC = re.compile(r"^([\w$.]+)<(.+)>$")
ARRAY_WRAPPERS = {"Array", "ReadonlyArray"}
SIGNAL_WRAPPERS = {"Signal", "WritableSignal", "InputSignal", "ModelSignal", "InputSignalWithTransform"}
STRING_MEMBERS = {"length": "number"}


@dataclass
class MemberInfo:
    """Property or method declared on a class, interface or type literal."""

    name: str
    kind: str  # "property" or "method"
    type_text: str | None = None  # Property type, or method return type
    parameters: list[str] = field(default_factory=list)  # "name: Type" as written
    optional: bool = False


@dataclass
class TypeShape:
    """Members of a named type declared in the owner file."""

    name: str
    members: dict[str, MemberInfo] = field(default_factory=dict)
    is_component: bool = False
    is_exported: bool = False


def _find_identifier_node(node: Any) -> Any | None:
    name = node.child_by_field_name("name")
    if name is not None:
        return name
    for child in node.children:
        if child.type in ("identifier", "type_identifier", "property_identifier"):
            return child
    return None


def _annotation_text(annotation: Any, source: bytes) -> str | None:
    if annotation is None:
        return None
    text = extract_node_text(annotation, source).strip()
    return text[1:].strip() if text.startswith(":") else text


def _decorators(node: Any) -> list[Any]:
    found = [child for child in node.children if child.type == "decorator"]
    parent = node.parent
    if parent is not None and parent.type == "export_statement":
        found.extend(child for child in parent.children if child.type == "decorator")
    return found


def _literal_type(value: Any, source: bytes) -> str | None:
    """Type of a simple field initializer."""
    if value is None:
        return None
    if value.type == "number":
        return "number"
    if value.type in ("string", "template_string"):
        return "string"
    if value.type in ("true", "false"):
        return "boolean"
    if value.type == "new_expression":
        constructor = value.child_by_field_name("constructor")
        if constructor is not None:
            return extract_node_text(constructor, source)
    return None


def find_component_class(tree: Any, source: bytes) -> str | None:
    """
    Name of the component class in a parsed file.

    Prefers a class decorated with @Component, then the first exported class,
    then the first class.
    """
    if tree is None:
        return None

    classes = []
    for node in _walk(tree.root_node):
        if node.type not in ("class_declaration", "abstract_class_declaration"):
            continue
        identifier = _find_identifier_node(node)
        if identifier is None:
            continue
        is_component = any("Component" in extract_node_text(d, source) for d in _decorators(node))
        is_exported = node.parent is not None and node.parent.type == "export_statement"
        classes.append((extract_node_text(identifier, source), is_component, is_exported))

    for name, is_component, _ in classes:
        if is_component:
            return name
    for name, _, is_exported in classes:
        if is_exported:
            return name
    return classes[0][0] if classes else None


def _walk(node: Any):
    yield node
    for child in node.children:
        yield from _walk(child)


def _parameters(params_node: Any, source: bytes, shape: TypeShape | None = None) -> list[str]:
    """Rendered parameters; constructor parameter properties are added to shape."""
    rendered = []
    if params_node is None:
        return rendered
    for param in params_node.named_children:
        if param.type not in ("required_parameter", "optional_parameter"):
            continue
        pattern = param.child_by_field_name("pattern")
        name = extract_node_text(pattern, source) if pattern is not None else extract_node_text(param, source)
        type_text = _annotation_text(param.child_by_field_name("type"), source)
        optional = param.type == "optional_parameter"
        marker = "?" if optional else ""
        rendered.append(f"{name}{marker}: {type_text}" if type_text else f"{name}{marker}")

        if shape is not None and any(c.type in ("accessibility_modifier", "readonly") for c in param.children):
            shape.members[name] = MemberInfo(name=name, kind="property", type_text=type_text, optional=optional)
    return rendered


def _collect_members(body: Any, source: bytes, shape: TypeShape) -> None:
    for member in body.named_children:
        if member.type in ("public_field_definition", "property_signature"):
            identifier = _find_identifier_node(member)
            if identifier is None:
                continue
            name = extract_node_text(identifier, source)
            type_text = _annotation_text(member.child_by_field_name("type"), source)
            if type_text is None:
                type_text = _literal_type(member.child_by_field_name("value"), source)
            shape.members[name] = MemberInfo(
                name=name,
                kind="property",
                type_text=type_text,
                optional=any(child.type == "?" for child in member.children),
            )

        elif member.type in ("method_definition", "method_signature", "abstract_method_signature"):
            identifier = _find_identifier_node(member)
            if identifier is None:
                continue
            name = extract_node_text(identifier, source)
            return_type = _annotation_text(member.child_by_field_name("return_type"), source)
            params_node = member.child_by_field_name("parameters")
            if name == "constructor":
                _parameters(params_node, source, shape)
                continue
            if any(child.type == "get" for child in member.children):
                shape.members[name] = MemberInfo(name=name, kind="property", type_text=return_type)
                continue
            if any(child.type == "set" for child in member.children):
                continue
            shape.members[name] = MemberInfo(
                name=name,
                kind="method",
                type_text=return_type,
                parameters=_parameters(params_node, source),
            )


def collect_type_shapes(tree: Any, source: bytes) -> dict[str, TypeShape]:
    """Classes, interfaces and object type aliases declared in a file."""
    shapes: dict[str, TypeShape] = {}
    for node in _walk(tree.root_node):
        if node.type in ("class_declaration", "abstract_class_declaration", "interface_declaration"):
            identifier = _find_identifier_node(node)
            body = node.child_by_field_name("body")
            if identifier is None or body is None:
                continue
            shape = TypeShape(
                name=extract_node_text(identifier, source),
                is_component=any("Component" in extract_node_text(d, source) for d in _decorators(node)),
                is_exported=node.parent is not None and node.parent.type == "export_statement",
            )
            _collect_members(body, source, shape)
            shapes[shape.name] = shape

        elif node.type == "type_alias_declaration":
            identifier = _find_identifier_node(node)
            value = node.child_by_field_name("value")
            if identifier is None or value is None or value.type != "object_type":
                continue
            shape = TypeShape(name=extract_node_text(identifier, source))
            _collect_members(value, source, shape)
            shapes[shape.name] = shape
    return shapes


def _strip_nullish(type_text: str) -> str:
    members = [m for m in split_top_level(type_text, "|") if m not in ("null", "undefined")]
    return " | ".join(members) if members else type_text


def _unwrap(type_text: str) -> str:
    type_text = type_text.strip()
    while type_text.startswith("(") and type_text.endswith(")"):
        type_text = type_text[1:-1].strip()
    return type_text


def element_type(type_text: str) -> str | None:
    """Element type of an array type, or None."""
    type_text = _unwrap(_strip_nullish(type_text))
    match = ARRAY_SUFFIX.match(type_text)
    if match:
        return _unwrap(match.group(1))
    match = GENERIC.match(type_text)
    if match and match.group(1) in ARRAY_WRAPPERS:
        return match.group(2).strip()
    return None


def parse_member_chain(expression: str) -> list[tuple[str, str]] | None:
    """
    Split an expression into ("member", name), ("index", "") and ("call", args) steps.

    Returns None for anything that is not a plain member chain.
    """
    text = expression.strip()
    steps: list[tuple[str, str]] = []
    identifier = re.compile(r"[A-Za-z_$][\w$]*")
    match = identifier.match(text)
    if not match:
        return None
    steps.append(("member", match.group(0)))
    pos = match.end()

    while pos < len(text):
        char = text[pos]
        if char.isspace():
            pos += 1
        elif char == "!":
            pos += 1
        elif text.startswith("?.", pos) or char == ".":
            pos += 2 if char == "?" else 1
            if pos < len(text) and text[pos] in "[(":
                continue
            match = identifier.match(text, pos)
            if not match:
                return None
            steps.append(("member", match.group(0)))
            pos = match.end()
        elif char in "[(":
            closing = "]" if char == "[" else ")"
            depth = 0
            end = -1
            for i in range(pos, len(text)):
                if text[i] == char:
                    depth += 1
                elif text[i] == closing:
                    depth -= 1
                    if depth == 0:
                        end = i
                        break
            if end < 0:
                return None
            steps.append(("index" if char == "[" else "call", text[pos + 1 : end]))
            pos = end + 1
        else:
            return None
    return steps


class LocalTypeResolver:
    """Resolves template expressions against declarations in the owner file."""

    def __init__(self, cache: AnalysisContextCache, extractor: TypeExtractor | None = None):
        self.cache = cache
        self.extractor = extractor or TypeExtractor()

    def describe(self, owner_file_path: str, expression: str) -> str | None:
        """Hover-style signature for an expression, or None when it cannot be resolved."""
        handle = self.cache.get_or_attach_file(owner_file_path) if owner_file_path else None
        if handle is None:
            return None

        shapes = collect_type_shapes(handle.tree, handle.source)
        owner = find_component_class(handle.tree, handle.source)
        if owner is None:
            return None

        main = split_top_level(expression, "|")
        if not main:
            return None
        text = main[0]
        negated = text.startswith("!")
        steps = parse_member_chain(text.lstrip("!"))
        if not steps:
            return None
        if negated:
            names = [value for kind, value in steps if kind == "member"]
            return f"(property) {names[-1]}: boolean"

        return self._walk_chain(shapes, owner, steps)

    def _walk_chain(self, shapes: dict[str, TypeShape], owner: str, steps: list[tuple[str, str]]) -> str | None:
        current_type = owner
        owner_label = owner
        last_member: MemberInfo | None = None
        last_name = ""
        signature: str | None = None

        for index, (kind, value) in enumerate(steps):
            is_last = index == len(steps) - 1
            if kind == "member":
                if current_type is None:
                    return None
                base = _unwrap(_strip_nullish(current_type))
                if value == "length" and (element_type(base) is not None or base == "string"):
                    last_member = MemberInfo(name="length", kind="property", type_text=STRING_MEMBERS["length"])
                else:
                    shape = shapes.get(GENERIC.sub(r"\1", base))
                    if shape is None or value not in shape.members:
                        return None
                    owner_label = shape.name
                    last_member = shape.members[value]
                current_type = last_member.type_text
                last_name = value
                signature = self._render(owner_label, last_member)

            elif kind == "index":
                if current_type is None:
                    return None
                current_type = element_type(current_type)
                if current_type is None:
                    return None
                last_member = None
                signature = f"(property) {last_name}: {current_type}"

            elif kind == "call":
                if last_member is not None and last_member.kind == "method":
                    if is_last:
                        return signature
                    current_type = last_member.type_text
                else:
                    current_type = self._call_result(current_type)
                    if current_type is None:
                        return None
                    signature = f"(property) {last_name}: {current_type}"
                last_member = None
        return signature

    @staticmethod
    def _call_result(type_text: str | None) -> str | None:
        if type_text is None:
            return None
        base = _unwrap(_strip_nullish(type_text))
        match = GENERIC.match(base)
        if match and match.group(1) in SIGNAL_WRAPPERS:
            return split_top_level(match.group(2), ",")[0]
        arrow = base.rfind("=>")
        if base.startswith("(") and arrow > 0:
            return base[arrow + 2 :].strip()
        return None

    @staticmethod
    def _render(owner: str, member: MemberInfo) -> str:
        if member.kind == "method":
            return f"(method) {owner}.{member.name}({', '.join(member.parameters)}): {member.type_text or 'any'}"
        marker = "?" if member.optional else ""
        return f"(property) {owner}.{member.name}{marker}: {member.type_text or 'any'}"

    def infer(self, context: InferenceContext) -> dict[str, InferredType]:
        """Local types for every binding; unresolvable ones come back unknown."""
        results = {}
        for property_name, expression in context.bindings.items():
            try:
                signature = self.describe(context.owner_file_path, expression)
            except Exception as e:
                logger.debug(f"Local resolution failed for '{property_name}': {e}")
                signature = None

            extracted = self.extractor.extract(f"```typescript\n{signature}\n```") if signature else None
            if extracted is None or extracted.type in ("any", "unknown"):
                results[property_name] = InferredType.unknown(property_name)
                continue

            results[property_name] = InferredType(
                property_name=property_name,
                type=extracted.type,
                is_inferred=True,
                confidence=extracted.confidence,
                source=TypeSource.LOCAL,
            )
        return results
