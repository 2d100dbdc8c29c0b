"""
Binding type inference models for FastMCP integration.

These dataclasses describe the values flowing through the inference pipeline:
the request context, the throwaway component used for type probes, the raw
hover answers and the final per-binding type descriptors.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class BindingKind(str, Enum):
    """Kind of component binding."""

    INPUT = "input"
    OUTPUT = "output"
    MODEL = "model"


class Confidence(str, Enum):
    """How much a consumer may trust an inferred type."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return {"low": 0, "medium": 1, "high": 2}[self.value]


class TypeSource(str, Enum):
    """Where an inferred type came from."""

    LANGUAGE_SERVICE = "language_service"
    LOCAL = "local"
    FALLBACK = "fallback"


@dataclass
class AnalysisError:
    """Standard error information for inference operations."""

    code: str  # Error code like "INVALID_INPUT", "QUERY_TIMEOUT", etc.
    message: str  # Human-readable error message
    file: str | None = None  # File path where error occurred
    line: int | None = None  # Line number where error occurred


@dataclass
class Binding:
    """A single component binding cut out of a parent template."""

    property_name: str  # Property name the generated component declares
    expression: str  # Template expression text, e.g. "user.name"
    kind: BindingKind = BindingKind.INPUT


@dataclass(frozen=True)
class InferenceContext:
    """Input to one inference call."""

    owner_file_path: str  # Source file of the component owning the template
    bindings: dict[str, str]  # property name -> expression, iteration order is processing order
    binding_kinds: dict[str, BindingKind] = field(default_factory=dict)

    def kind_of(self, property_name: str) -> BindingKind:
        """Declared kind, else guessed from the expression shape."""
        if property_name in self.binding_kinds:
            return BindingKind(self.binding_kinds[property_name])
        expression = self.bindings.get(property_name, "")
        if property_name == "ngModel":
            return BindingKind.MODEL
        if "(" in expression and ")" in expression:
            return BindingKind.OUTPUT
        return BindingKind.INPUT

    def as_bindings(self) -> list[Binding]:
        return [Binding(name, expression, self.kind_of(name)) for name, expression in self.bindings.items()]


@dataclass(frozen=True)
class Position:
    """0-based line/column pair. (0, 0) also means "position unknown"."""

    line: int = 0
    column: int = 0

    @property
    def is_unknown(self) -> bool:
        return self.line == 0 and self.column == 0


@dataclass
class ComponentHost:
    """Owner component the probe component extends so its members resolve."""

    class_name: str  # Exported class name in the owner file
    file_path: str  # Absolute path to the owner file


@dataclass
class TemporaryArtifact:
    """Throwaway component file embedding a template for the type oracle."""

    path: str  # Absolute path on disk
    uri: str  # file:// URI handed to the oracle
    created_at: float  # Wall clock time of creation
    content: str  # Full text written to disk
    template_offset: int  # Character offset of the template inside content
    template_text: str = ""  # Template as given by the caller
    host: ComponentHost | None = None


@dataclass
class HoverResult:
    """Outcome of a single type query."""

    success: bool
    type_info: str | None = None  # Selected candidate text
    raw_hover: list[str] = field(default_factory=list)  # Every candidate returned by the oracle
    error: str | None = None
    error_code: str | None = None


@dataclass
class ExtractedType:
    """Structured view of a hover signature."""

    type: str  # Normalized type text, never empty
    is_nullable: bool = False  # Union contains a top-level null
    is_optional: bool = False  # Declared with "?:"
    confidence: Confidence = Confidence.HIGH


@dataclass
class InferredType:
    """Final per-binding result consumed by code generation."""

    property_name: str
    type: str
    is_inferred: bool
    confidence: Confidence
    source: TypeSource = TypeSource.LANGUAGE_SERVICE

    @classmethod
    def unknown(cls, property_name: str) -> "InferredType":
        return cls(
            property_name=property_name,
            type="unknown",
            is_inferred=False,
            confidence=Confidence.LOW,
            source=TypeSource.FALLBACK,
        )


@dataclass
class InferenceIssue:
    """Per-binding failure recorded during an inference call."""

    code: str
    message: str
    property_name: str | None = None


@dataclass
class InferenceReport:
    """Results of one inference call plus the issues met on the way."""

    results: dict[str, InferredType]
    issues: list[InferenceIssue] = field(default_factory=list)


@dataclass
class FileHandle:
    """Source file attached to an analysis context."""

    path: str  # Absolute path
    tree: Any  # tree-sitter Tree
    source: bytes  # File content the tree was parsed from
    attached_at: float  # Monotonic timestamp of attachment


@dataclass
class CacheStats:
    """Analysis context cache occupancy."""

    context_count: int
    tracked_file_count: int


@dataclass
class ParseResult:
    """Result of parsing a TypeScript file."""

    success: bool
    tree: Any | None = None  # tree-sitter Tree object
    source: bytes | None = None  # Bytes the tree was built from
    errors: list[AnalysisError] = field(default_factory=list)
    parse_time_ms: float = 0.0


@dataclass
class CacheEntry:
    """Parsed file kept in a parser cache."""

    tree: Any
    source: bytes
    modified_time: float
    access_count: int = 0


@dataclass
class ParserStats:
    """Parser performance statistics."""

    files_parsed: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    total_parse_time_ms: float = 0.0
    cached_files: int = 0


@dataclass
class InferBindingTypesResponse:
    """Response for infer_binding_types tool."""

    types: list[InferredType]  # One entry per binding, input order
    errors: list[AnalysisError]
    success: bool = True
    workspace_root: str | None = None  # Analysis context the owner file resolved to
