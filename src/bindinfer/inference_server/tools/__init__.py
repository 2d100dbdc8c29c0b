"""Inference server tools implementations.

Binding type inference for components generated from Angular templates.
"""

import logging

from .._security import get_project_root
from ..config import get_config
from ..models.inference_models import InferBindingTypesResponse
from .hover_client import HoverOracle
from .language_server import LanguageServerClient, LanguageServerHoverOracle
from .project_cache import AnalysisContextCache
from .type_inferrer import infer_binding_types_impl

logger = logging.getLogger(__name__)


def build_context_cache() -> AnalysisContextCache:
    """Analysis context cache sized from configuration."""
    config = get_config()
    return AnalysisContextCache(
        max_contexts=config.max_cached_projects,
        max_files_per_context=config.max_files_per_project,
        ttl_seconds=config.project_ttl_seconds,
    )


def build_hover_oracle() -> HoverOracle | None:
    """Language server oracle from configuration, or None when no command is set."""
    config = get_config()
    if not config.language_server_command:
        return None
    return LanguageServerHoverOracle(LanguageServerClient(config.language_server_command, get_project_root()))


async def close_hover_oracle(oracle: HoverOracle | None) -> None:
    """Stop the language server behind an oracle, when it owns one."""
    close = getattr(oracle, "aclose", None)
    if close is None:
        return
    try:
        await close()
    except Exception as e:
        logger.warning(f"Error shutting down language server: {e}")


def register_inference_tools(mcp, cache: AnalysisContextCache | None = None, oracle: HoverOracle | None = None):
    """Register binding type inference tools with the MCP server."""
    cache = cache or build_context_cache()
    oracle = oracle or build_hover_oracle()

    @mcp.tool
    async def infer_binding_types(
        owner_file_path: str,
        bindings: dict[str, str] | str,
        binding_kinds: dict[str, str] | str | None = None,
        use_language_service: bool | None = None,
        timeout_ms: int | None = None,
    ) -> InferBindingTypesResponse:
        """
        Infer TypeScript types for template bindings of a component being extracted.

        Use this tool when:
        - Generating a child component from a slice of a parent template
        - Declaring @Input/@Output properties that need concrete types
        - Replacing "any" or "unknown" placeholders in generated code

        Args:
            owner_file_path: Component .ts file whose template the bindings come from
            bindings: Property name to template expression (e.g., {"userName": "user.name"})
            binding_kinds: Optional property name to "input", "output" or "model"
            use_language_service: Ask the Angular language server (default: from configuration)
            timeout_ms: Per-binding hover timeout in milliseconds (default: 3000)

        Example:
            infer_binding_types("src/app/app.component.ts", {"userName": "user.name"})
            → InferBindingTypesResponse with types=[{property_name: "userName", type: "string", ...}]

        Note: Every binding gets an entry; is_inferred=False means "render as unknown"
        """
        return await infer_binding_types_impl(
            owner_file_path=owner_file_path,
            bindings=bindings,
            binding_kinds=binding_kinds,
            use_language_service=use_language_service,
            timeout_ms=timeout_ms,
            cache=cache,
            oracle=oracle,
        )

    @mcp.tool
    def get_inference_cache_stats() -> dict[str, int]:
        """
        Report analysis context cache occupancy.

        Use this tool when:
        - Checking how many workspaces are held in memory
        - Verifying that idle workspaces are being evicted

        Example:
            get_inference_cache_stats()
            → {"context_count": 1, "tracked_file_count": 3}
        """
        stats = cache.stats()
        return {"context_count": stats.context_count, "tracked_file_count": stats.tracked_file_count}

    return cache
