"""
Binding type inference combining the language service and local resolution.

The language service answer is kept when it is confident. Entries it could
not infer, or only inferred with low confidence, are filled from the local
resolver when that does better. With the language service disabled only the
local resolver runs.
"""

import json
import logging

from .._security import get_project_root, validate_file_path
from ..config import InferenceServerConfig, get_config
from ..errors import INVALID_INPUT, RESOLUTION_FAILURE
from ..models.inference_models import (
    AnalysisError,
    BindingKind,
    Confidence,
    InferBindingTypesResponse,
    InferenceContext,
    InferenceReport,
    InferredType,
)
from .hover_client import HoverOracle, TypeQueryClient
from .inference_engine import InferenceOrchestrator, unknown_results
from .local_resolver import LocalTypeResolver
from .project_cache import AnalysisContextCache
from .template_manager import TemporaryDocumentManager
from .type_extractor import TypeExtractor

logger = logging.getLogger(__name__)


class TypeInferrer:
    """Merges language service results with local resolution."""

    def __init__(self, local_resolver: LocalTypeResolver, orchestrator: InferenceOrchestrator | None = None):
        self.local_resolver = local_resolver
        self.orchestrator = orchestrator

    async def infer(self, context: InferenceContext) -> dict[str, InferredType]:
        report = await self.infer_with_report(context)
        return report.results

    async def infer_with_report(self, context: InferenceContext) -> InferenceReport:
        if not context.bindings:
            return InferenceReport(results={})

        if self.orchestrator is None:
            return InferenceReport(results=self.local_resolver.infer(context))

        report = await self.orchestrator.infer_with_report(context)

        weak = [
            name
            for name, result in report.results.items()
            if not result.is_inferred or result.confidence == Confidence.LOW
        ]
        if not weak:
            return report

        local = self.local_resolver.infer(
            InferenceContext(
                owner_file_path=context.owner_file_path,
                bindings={name: context.bindings[name] for name in weak},
                binding_kinds=context.binding_kinds,
            )
        )
        for name in weak:
            current = report.results[name]
            candidate = local.get(name)
            if candidate is None or not candidate.is_inferred:
                continue
            if not current.is_inferred or candidate.confidence.rank > current.confidence.rank:
                logger.debug(f"Using local type for '{name}': {candidate.type}")
                report.results[name] = candidate
        return report


def _parse_mapping(value: dict | str | None, label: str) -> dict[str, str]:
    if value is None:
        return {}
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError as e:
            raise ValueError(f"{label} is not valid JSON: {e}") from e
    if not isinstance(value, dict):
        raise ValueError(f"{label} must be an object mapping names to strings")
    for key, item in value.items():
        if not isinstance(key, str) or not isinstance(item, str):
            raise ValueError(f"{label} must map strings to strings")
    return value


async def infer_binding_types_impl(
    owner_file_path: str,
    bindings: dict[str, str] | str,
    binding_kinds: dict[str, str] | str | None = None,
    use_language_service: bool | None = None,
    timeout_ms: int | None = None,
    *,
    cache: AnalysisContextCache,
    oracle: HoverOracle | None = None,
    config: InferenceServerConfig | None = None,
) -> InferBindingTypesResponse:
    """
    Infer types for component bindings cut out of a template.

    Args:
        owner_file_path: Component file owning the template (absolute or relative to MCP_FILE_ROOT)
        bindings: Property name to template expression, as a dict or JSON string
        binding_kinds: Optional property name to "input", "output" or "model"
        use_language_service: Query the language server; defaults to configuration
        timeout_ms: Per-binding hover timeout; defaults to configuration
        cache: Analysis context cache shared across calls
        oracle: Hover oracle, None when no language server is available
        config: Server configuration, defaults to the global one

    Returns:
        InferBindingTypesResponse with one entry per binding in input order
    """
    config = config or get_config()

    try:
        binding_map = _parse_mapping(bindings, "bindings")
    except ValueError as e:
        return InferBindingTypesResponse(
            types=[],
            errors=[AnalysisError(code=INVALID_INPUT, message=str(e), file=owner_file_path)],
            success=False,
        )

    # bad kinds still answer every binding, as unknown
    try:
        kinds = _parse_mapping(binding_kinds, "binding_kinds")
        kind_map = {name: BindingKind(kind) for name, kind in kinds.items()}
    except ValueError as e:
        return InferBindingTypesResponse(
            types=list(unknown_results(binding_map).values()),
            errors=[AnalysisError(code=INVALID_INPUT, message=str(e), file=owner_file_path)],
            success=False,
        )

    validation = validate_file_path(owner_file_path, get_project_root())
    if not validation["valid"]:
        return InferBindingTypesResponse(
            types=list(unknown_results(binding_map).values()),
            errors=[AnalysisError(code=INVALID_INPUT, message=validation["error"], file=owner_file_path)],
            success=False,
        )

    abs_path = str(validation["abs_path"])
    context = InferenceContext(owner_file_path=abs_path, bindings=binding_map, binding_kinds=kind_map)

    if use_language_service is None:
        use_language_service = config.use_language_service

    extractor = TypeExtractor()
    orchestrator = None
    if use_language_service and oracle is not None:
        workspace_root = cache.find_workspace_root(abs_path)
        orchestrator = InferenceOrchestrator(
            document_manager=TemporaryDocumentManager(config.scratch_dir, project_root=workspace_root),
            query_client=TypeQueryClient(oracle, default_timeout_ms=config.hover_timeout_ms),
            extractor=extractor,
            cache=cache,
            timeout_ms=timeout_ms or config.hover_timeout_ms,
        )

    inferrer = TypeInferrer(LocalTypeResolver(cache, extractor), orchestrator)
    try:
        report = await inferrer.infer_with_report(context)
    except Exception as e:
        logger.error(f"Binding type inference failed for {abs_path}: {e}")
        return InferBindingTypesResponse(
            types=list(unknown_results(binding_map).values()),
            errors=[AnalysisError(code=RESOLUTION_FAILURE, message=f"Inference failed: {str(e)}", file=abs_path)],
            success=False,
        )

    errors = [
        AnalysisError(
            code=issue.code,
            message=f"{issue.property_name}: {issue.message}" if issue.property_name else issue.message,
            file=abs_path,
        )
        for issue in report.issues
    ]

    return InferBindingTypesResponse(
        types=[report.results[name] for name in binding_map],
        errors=errors,
        success=True,
        workspace_root=cache.find_workspace_root(abs_path),
    )
