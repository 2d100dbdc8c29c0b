"""
Position-based type queries against a hover oracle.

The oracle is anything that answers "what is at this position of this
document" with a list of markdown candidates, one per analyzer that responded.
The client races each request against a deadline and picks the candidate that
comes from a TypeScript-aware analyzer.
"""

import asyncio
import logging
import re
from collections.abc import Sequence
from typing import Protocol

from ..errors import QUERY_FAILURE, QUERY_TIMEOUT, InferenceError
from ..models.inference_models import HoverResult, Position, TemporaryArtifact
from .template_manager import offset_to_position

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 3000
MIN_TIMEOUT_MS = 100
MAX_TIMEOUT_MS = 10000


class HoverOracle(Protocol):
    """External hover capability."""

    async def hover(self, document_uri: str, line: int, column: int) -> list[str]: ...


class CompositeHoverOracle:
    """Asks several oracles in turn and concatenates their candidates."""

    def __init__(self, oracles: Sequence[HoverOracle]):
        self.oracles = list(oracles)

    async def hover(self, document_uri: str, line: int, column: int) -> list[str]:
        candidates: list[str] = []
        for oracle in self.oracles:
            try:
                candidates.extend(await oracle.hover(document_uri, line, column))
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.debug(f"Hover oracle {type(oracle).__name__} failed: {e}")
        return candidates


def _discard_result(task: asyncio.Task) -> None:
    if not task.cancelled():
        task.exception()


class TypeQueryClient:
    """Issues hover requests with a deadline and selects a usable candidate."""

    def __init__(
        self,
        oracle: HoverOracle,
        default_timeout_ms: int = DEFAULT_TIMEOUT_MS,
        language_tags: tuple[str, ...] = ("typescript", "ts"),
    ):
        self.oracle = oracle
        self.default_timeout_ms = default_timeout_ms
        self._fence = re.compile(r"```(?:" + "|".join(re.escape(tag) for tag in language_tags) + r")\b")

    def select_candidate(self, candidates: list[str]) -> str | None:
        """First candidate holding a TypeScript-tagged code block."""
        for candidate in candidates:
            if candidate and self._fence.search(candidate):
                return candidate
        return None

    async def query_at(
        self, artifact: TemporaryArtifact, position: Position, timeout_ms: int | None = None
    ) -> HoverResult:
        """
        Ask the oracle about one position of an artifact.

        A request that outlives the deadline is cancelled and reported as a
        timeout; its late answer is never observed.
        """
        timeout_ms = timeout_ms if timeout_ms is not None else self.default_timeout_ms
        timeout_ms = min(max(timeout_ms, MIN_TIMEOUT_MS), MAX_TIMEOUT_MS)

        task = asyncio.ensure_future(self.oracle.hover(artifact.uri, position.line, position.column))
        done, _ = await asyncio.wait({task}, timeout=timeout_ms / 1000)
        if not done:
            task.add_done_callback(_discard_result)
            task.cancel()
            return HoverResult(
                success=False,
                error=f"Hover request timeout after {timeout_ms}ms",
                error_code=QUERY_TIMEOUT,
            )

        try:
            candidates = task.result()
        except Exception as e:
            code = e.code if isinstance(e, InferenceError) else QUERY_FAILURE
            return HoverResult(success=False, error=str(e) or type(e).__name__, error_code=code)

        candidates = [c for c in (candidates or []) if c]
        if not candidates:
            return HoverResult(success=False, error="No hover information found", error_code=QUERY_FAILURE)

        selected = self.select_candidate(candidates)
        if selected is None:
            return HoverResult(
                success=False,
                raw_hover=candidates,
                error="No hover from a TypeScript analyzer",
                error_code=QUERY_FAILURE,
            )

        return HoverResult(success=True, type_info=selected, raw_hover=candidates)

    async def query_for_expression(
        self,
        artifact: TemporaryArtifact,
        expression: str,
        template_offset: int = 0,
        timeout_ms: int | None = None,
    ) -> HoverResult:
        """Query the first occurrence of the expression at or after template_offset."""
        start = artifact.template_offset + max(template_offset, 0)
        index = artifact.content.find(expression, start) if expression else -1
        if index < 0:
            return HoverResult(
                success=False,
                error=f"Expression not found in template: {expression}",
                error_code=QUERY_FAILURE,
            )
        return await self.query_at(artifact, offset_to_position(artifact.content, index), timeout_ms)
