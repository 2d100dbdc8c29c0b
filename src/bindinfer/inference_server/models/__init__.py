"""Inference server models."""

from .inference_models import (
    AnalysisError,
    Binding,
    BindingKind,
    CacheEntry,
    CacheStats,
    ComponentHost,
    Confidence,
    ExtractedType,
    FileHandle,
    HoverResult,
    InferBindingTypesResponse,
    InferenceContext,
    InferenceIssue,
    InferenceReport,
    InferredType,
    ParseResult,
    ParserStats,
    Position,
    TemporaryArtifact,
    TypeSource,
)

__all__ = [
    "AnalysisError",
    "Binding",
    "BindingKind",
    "CacheEntry",
    "CacheStats",
    "ComponentHost",
    "Confidence",
    "ExtractedType",
    "FileHandle",
    "HoverResult",
    "InferBindingTypesResponse",
    "InferenceContext",
    "InferenceIssue",
    "InferenceReport",
    "InferredType",
    "ParseResult",
    "ParserStats",
    "Position",
    "TemporaryArtifact",
    "TypeSource",
]
