"""
Turns hover text into structured type descriptors.

Hover answers are markdown with a fenced code block holding a declaration
signature such as ``(property) AppComponent.user: User | null`` or
``(method) AppComponent.save(event: MouseEvent): void``. The extractor pulls
the type out of that signature, flags nullability and optionality, strips
``import("...")`` qualifiers and rates how specific the result is.
"""

import re

from ..models.inference_models import Confidence, ExtractedType

CODE_BLOCK = re.compile(r"```[^\n`]*\n(.*?)\n?```", re.DOTALL)
IMPORT_QUALIFIER = re.compile(r"import\(\s*(?:\"[^\"]*\"|'[^']*'|[^)]*)\s*\)\.")
KIND_LABEL = re.compile(r"^\(([A-Za-z][\w ]*)\)\s*")
MODIFIERS = re.compile(
    r"^(?:(?:readonly|public|private|protected|static|declare|export|default|abstract|async|"
    r"const|let|var|function|get|set|type|interface)\s+)+"
)
MEMBER_NAME = re.compile(r"[A-Za-z_$#][\w$]*(?:\.[A-Za-z_$#][\w$]*)*")
LITERAL_TYPE = re.compile(r"^(?:'[^']*'|\"[^\"]*\"|`[^`]*`|-?\d+(?:\.\d+)?|true|false)$")
WHITESPACE = re.compile(r"\s+")

_OPENERS = {"(": ")", "<": ">", "{": "}", "[": "]"}
_CLOSERS = set(_OPENERS.values())


def _scan(text: str, start: int = 0):
    """Yield (index, char, depth) for characters outside string literals."""
    depth = 0
    quote = None
    for i in range(start, len(text)):
        char = text[i]
        if quote:
            if char == quote and text[i - 1] != "\\":
                quote = None
            continue
        if char in "'\"`":
            quote = char
            continue
        if char in _OPENERS:
            depth += 1
        elif char in _CLOSERS:
            if char == ">" and i > 0 and text[i - 1] == "=":
                # arrow in a function type
                yield i, char, depth
                continue
            depth = max(depth - 1, 0)
        yield i, char, depth


def find_top_level(text: str, target: str, start: int = 0) -> int:
    """Index of the first target character outside brackets and strings, or -1."""
    for i, char, depth in _scan(text, start):
        if char == target and depth == 0:
            return i
    return -1


def split_top_level(text: str, separator: str) -> list[str]:
    """Split on a separator that is outside brackets and strings. Empty parts are dropped."""
    parts = []
    last = 0
    for i, char, depth in _scan(text):
        if char == separator and depth == 0:
            if separator == "|" and (text[i + 1 : i + 2] == "|" or text[i - 1 : i] == "|"):
                continue
            parts.append(text[last:i])
            last = i + 1
    parts.append(text[last:])
    return [part.strip() for part in parts if part.strip()]


def _matching_paren(text: str, open_index: int) -> int:
    depth = 0
    for i, char, _ in _scan(text, open_index):
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth == 0:
                return i
    return -1


class TypeExtractor:
    """Extracts and normalizes types from hover text."""

    def extract(self, hover_text: str | None) -> ExtractedType | None:
        """
        Structured type from hover markdown.

        Returns None when the text has no fenced code block or the block has
        no recognizable declaration type.
        """
        if not hover_text:
            return None

        code_block = self.parse_code_block(hover_text)
        if not code_block:
            return None

        raw_type, is_optional = self._split_signature(code_block)
        if not raw_type:
            return None

        raw_type = IMPORT_QUALIFIER.sub("", raw_type)
        is_nullable = "null" in split_top_level(raw_type, "|")
        normalized = self.normalize(raw_type)

        return ExtractedType(
            type=normalized,
            is_nullable=is_nullable,
            is_optional=is_optional,
            confidence=self.classify(normalized),
        )

    def parse_code_block(self, markdown: str | None) -> str | None:
        """Content of the first fenced code block, tagged or not."""
        if not markdown:
            return None
        match = CODE_BLOCK.search(markdown)
        if match is None:
            return None
        content = match.group(1).strip()
        return content or None

    def extract_from_signature(self, signature: str | None) -> str:
        """Type portion of a declaration signature, or "" when there is none."""
        return self._split_signature(signature)[0]

    def _split_signature(self, signature: str | None) -> tuple[str, bool]:
        """Return (type text, declared optional) for a property or method signature."""
        if not signature:
            return "", False

        text = WHITESPACE.sub(" ", signature).strip().rstrip(";").strip()
        label = KIND_LABEL.match(text)
        if label:
            text = text[label.end() :]
        text = MODIFIERS.sub("", text)

        name = MEMBER_NAME.match(text)
        cursor = name.end() if name else 0
        while cursor < len(text) and text[cursor] in "?! ":
            cursor += 1
        if cursor < len(text) and text[cursor] == "<" and name:
            # generic method type parameters
            close = cursor
            for i, char, depth in _scan(text, cursor):
                if char == ">" and depth == 0:
                    close = i
                    break
            cursor = close + 1
            while cursor < len(text) and text[cursor] == " ":
                cursor += 1

        if name and cursor < len(text) and text[cursor] == "(":
            return self._method_type(text, cursor)

        colon = find_top_level(text, ":")
        if colon < 0:
            return "", False
        type_text = text[colon + 1 :].strip()
        return type_text, text[:colon].rstrip().endswith("?")

    def _method_type(self, text: str, open_index: int) -> tuple[str, bool]:
        close = _matching_paren(text, open_index)
        if close < 0:
            return "", False

        params = split_top_level(text[open_index + 1 : close], ",")
        if params:
            first = params[0]
            colon = find_top_level(first, ":")
            if colon < 0:
                return "any", first.rstrip().endswith("?")
            type_text = first[colon + 1 :]
            default = find_top_level(type_text, "=")
            if default >= 0 and type_text[default + 1 : default + 2] != ">":
                type_text = type_text[:default]
            return type_text.strip(), first[:colon].rstrip().endswith("?")

        rest = text[close + 1 :].strip()
        if rest.startswith(":"):
            return rest[1:].strip(), False
        return "", False

    def normalize(self, type_string: str | None) -> str:
        """
        Canonical type text.

        Strips import("...") qualifiers, drops trailing undefined union
        members and collapses whitespace. Empty input becomes "unknown".
        """
        if not type_string or not type_string.strip():
            return "unknown"

        text = IMPORT_QUALIFIER.sub("", type_string)
        text = WHITESPACE.sub(" ", text).strip().rstrip(";").strip()

        members = split_top_level(text, "|")
        while len(members) > 1 and members[-1] == "undefined":
            members.pop()
        if len(members) > 1:
            text = " | ".join(members)
        elif members:
            text = members[0]

        return text or "unknown"

    def classify(self, normalized: str) -> Confidence:
        """Confidence for a normalized type."""
        if normalized in ("any", "unknown"):
            return Confidence.LOW

        members = [m for m in split_top_level(normalized, "|") if m != "null"]
        if len(members) == 1 and members[0] in ("any", "unknown"):
            return Confidence.LOW
        if len(members) <= 1:
            if len(split_top_level(normalized, "&")) > 1:
                return Confidence.MEDIUM
            return Confidence.HIGH
        if all(LITERAL_TYPE.match(m) for m in members):
            return Confidence.HIGH
        return Confidence.MEDIUM
