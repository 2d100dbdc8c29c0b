"""
Inference orchestrator.

Drives one inference call: build a probe component holding every binding,
ask the type oracle about each binding in turn, extract the type from the
answer and always delete the probe component afterwards.

Per call:
    START -> ARTIFACT_BUILT -> (POSITION -> QUERY -> EXTRACT -> RECORD)* -> CLEANUP -> DONE

Artifact creation failure is the only fatal path; every per-binding problem
is recorded as an issue and produces an "unknown" entry for that binding.
"""

import logging

from ..errors import (
    ARTIFACT_ERROR,
    INVALID_INPUT,
    QUERY_FAILURE,
    RESOLUTION_FAILURE,
    ExtractionFailure,
    InferenceError,
    QueryFailure,
)
from ..models.inference_models import (
    Binding,
    ComponentHost,
    Confidence,
    InferenceContext,
    InferenceIssue,
    InferenceReport,
    InferredType,
    TemporaryArtifact,
    TypeSource,
)
from .hover_client import DEFAULT_TIMEOUT_MS, TypeQueryClient
from .local_resolver import find_component_class
from .project_cache import AnalysisContextCache
from .template_manager import TemporaryDocumentManager, escaped_offset
from .type_extractor import TypeExtractor

logger = logging.getLogger(__name__)


def unknown_results(bindings: dict[str, str]) -> dict[str, InferredType]:
    return {name: InferredType.unknown(name) for name in bindings}


class InferenceOrchestrator:
    """Sequences probe creation, type queries and extraction for one context."""

    def __init__(
        self,
        document_manager: TemporaryDocumentManager,
        query_client: TypeQueryClient,
        extractor: TypeExtractor | None = None,
        cache: AnalysisContextCache | None = None,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
    ):
        self.document_manager = document_manager
        self.query_client = query_client
        self.extractor = extractor or TypeExtractor()
        self.cache = cache
        self.timeout_ms = timeout_ms

    async def infer(self, context: InferenceContext) -> dict[str, InferredType]:
        """Inferred type for every binding of the context. Never raises for binding-level problems."""
        report = await self.infer_with_report(context)
        return report.results

    async def infer_with_report(self, context: InferenceContext) -> InferenceReport:
        """Like infer(), plus the issues met along the way."""
        if not context.bindings:
            return InferenceReport(results={})

        if not context.owner_file_path or not context.owner_file_path.strip():
            logger.warning("Invalid owner file path provided, skipping type inference")
            return InferenceReport(
                results=unknown_results(context.bindings),
                issues=[InferenceIssue(code=INVALID_INPUT, message="Owner file path is empty")],
            )

        bindings = context.as_bindings()
        template_text, value_starts = self.document_manager.build_probe(bindings)
        host = self._resolve_host(context.owner_file_path)

        artifact: TemporaryArtifact | None = None
        try:
            try:
                artifact = await self.document_manager.materialize(template_text, host)
            except Exception as e:
                logger.warning(f"Fatal error in type inference, cannot create probe component: {e}")
                return InferenceReport(
                    results=unknown_results(context.bindings),
                    issues=[InferenceIssue(code=ARTIFACT_ERROR, message=str(e))],
                )

            results: dict[str, InferredType] = {}
            issues: list[InferenceIssue] = []

            for binding, value_start in zip(bindings, value_starts):
                search_from = escaped_offset(template_text, value_start)
                try:
                    results[binding.property_name] = await self._infer_binding(artifact, binding, search_from)
                except InferenceError as e:
                    logger.debug(f"No type for binding '{binding.property_name}': {e}")
                    issues.append(InferenceIssue(code=e.code, message=str(e), property_name=binding.property_name))
                    results[binding.property_name] = InferredType.unknown(binding.property_name)
                except Exception as e:
                    logger.debug(f"Error inferring type for binding '{binding.property_name}': {e}")
                    issues.append(
                        InferenceIssue(code=RESOLUTION_FAILURE, message=str(e), property_name=binding.property_name)
                    )
                    results[binding.property_name] = InferredType.unknown(binding.property_name)

            return InferenceReport(results=results, issues=issues)
        finally:
            if artifact is not None:
                try:
                    await self.document_manager.dispose(artifact)
                except Exception as cleanup_error:
                    logger.warning(f"Error cleaning up probe component: {cleanup_error}")

    async def _infer_binding(
        self,
        artifact: TemporaryArtifact,
        binding: Binding,
        search_from: int,
    ) -> InferredType:
        """Type of one binding; raises InferenceError subclasses when none can be found."""
        name = binding.property_name

        position = self.document_manager.position_in_artifact(artifact, binding.expression, search_from)
        if position.is_unknown:
            raise QueryFailure("Expression not found in probe component")

        hover = await self.query_client.query_at(artifact, position, self.timeout_ms)
        if not hover.success:
            raise InferenceError(hover.error or "No hover information found", hover.error_code or QUERY_FAILURE)

        extracted = self.extractor.extract(hover.type_info)
        if extracted is None or extracted.type == "unknown":
            raise ExtractionFailure("No type found in hover text")

        confidence = Confidence.LOW if extracted.type in ("any", "unknown") else extracted.confidence
        return InferredType(
            property_name=name,
            type=extracted.type,
            is_inferred=True,
            confidence=confidence,
            source=TypeSource.LANGUAGE_SERVICE,
        )

    def _resolve_host(self, owner_file_path: str) -> ComponentHost | None:
        """Owner component class the probe should extend, when it can be found."""
        if self.cache is None:
            return None
        try:
            handle = self.cache.get_or_attach_file(owner_file_path)
            if handle is None:
                return None
            class_name = find_component_class(handle.tree, handle.source)
        except Exception as e:
            logger.debug(f"Cannot resolve owner component in {owner_file_path}: {e}")
            return None
        return ComponentHost(class_name=class_name, file_path=handle.path) if class_name else None
