"""
Analysis context cache keyed by workspace root.

An analysis context bundles a tree-sitter parser with the set of source files
attached to it. Contexts are expensive to warm up, so they are shared by every
inference call whose owner file resolves to the same workspace root. The cache
is bounded by an LRU policy with an idle TTL, and each context bounds how many
files it tracks.
"""

import logging
import os
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass, field

from ..models.inference_models import CacheStats, FileHandle
from .typescript_parser import TypeScriptParser

logger = logging.getLogger(__name__)

DEFAULT_PROJECT_MARKERS = ("package.json", "angular.json")
DEFAULT_CONFIG_CANDIDATES = ("tsconfig.json", "tsconfig.app.json", "src/tsconfig.json")


@dataclass
class AnalysisContext:
    """Per-workspace analysis state."""

    workspace_root: str
    config_path: str | None  # tsconfig the context was built from, if any
    parser: TypeScriptParser
    last_accessed: float
    tracked_files: OrderedDict[str, FileHandle] = field(default_factory=OrderedDict)

    def touch(self, now: float) -> None:
        self.last_accessed = now


class AnalysisContextCache:
    """
    LRU-with-TTL cache of analysis contexts.

    Construct one per server (or per test) and pass it to the components that
    need it. evict_all() resets it.
    """

    def __init__(
        self,
        max_contexts: int = 5,
        max_files_per_context: int = 100,
        ttl_seconds: float = 300,
        project_markers: tuple[str, ...] = DEFAULT_PROJECT_MARKERS,
        config_candidates: tuple[str, ...] = DEFAULT_CONFIG_CANDIDATES,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_contexts = max_contexts
        self.max_files_per_context = max_files_per_context
        self.ttl_seconds = ttl_seconds
        self.project_markers = project_markers
        self.config_candidates = config_candidates
        self._clock = clock
        self._contexts: dict[str, AnalysisContext] = {}
        self._lock = threading.RLock()

    def find_workspace_root(self, file_path: str) -> str:
        """
        Walk up from the file's directory to the nearest project marker.

        Falls back to the file's own directory when no marker exists up to the
        filesystem root.
        """
        start = os.path.dirname(os.path.abspath(file_path))
        current = start
        while True:
            for marker in self.project_markers:
                if os.path.isfile(os.path.join(current, marker)):
                    return current
            parent = os.path.dirname(current)
            if parent == current:
                return start
            current = parent

    def find_config(self, workspace_root: str) -> str | None:
        """First existing TypeScript config under the root, or None."""
        for candidate in self.config_candidates:
            config_path = os.path.join(workspace_root, candidate)
            if os.path.isfile(config_path):
                return config_path
        return None

    def get_or_create(self, file_path: str) -> AnalysisContext:
        """Return the context for the file's workspace, creating it on a miss."""
        workspace_root = self.find_workspace_root(file_path)

        with self._lock:
            now = self._clock()
            context = self._contexts.get(workspace_root)
            if context is not None:
                context.touch(now)
                return context

            self._evict_stale(now)
            while len(self._contexts) >= self.max_contexts:
                self._evict_least_recent()

            config_path = self.find_config(workspace_root)
            context = AnalysisContext(
                workspace_root=workspace_root,
                config_path=config_path,
                parser=TypeScriptParser(max_cached_files=self.max_files_per_context),
                last_accessed=now,
            )
            self._contexts[workspace_root] = context
            logger.debug(f"Created analysis context for {workspace_root} (config: {config_path})")
            return context

    def get_or_attach_file(self, file_path: str) -> FileHandle | None:
        """
        Attach a source file to its workspace context.

        Returns None, without creating anything, when the file does not exist
        or cannot be parsed.
        """
        abs_path = os.path.abspath(file_path)
        if not os.path.isfile(abs_path):
            return None

        context = self.get_or_create(abs_path)

        with self._lock:
            existing = context.tracked_files.get(abs_path)
            if existing is not None and context.parser.get_cached_tree(abs_path) is existing.tree:
                return existing

            result = context.parser.parse_file(abs_path)
            if not result.success:
                logger.debug(f"Could not attach {abs_path}: {[e.message for e in result.errors]}")
                return None

            handle = FileHandle(path=abs_path, tree=result.tree, source=result.source, attached_at=self._clock())
            context.tracked_files.pop(abs_path, None)
            context.tracked_files[abs_path] = handle

            if len(context.tracked_files) > self.max_files_per_context:
                self._shed_files(context)

            return handle

    def _shed_files(self, context: AnalysisContext) -> None:
        """Drop the oldest half of a context's files by attachment order."""
        to_remove = list(context.tracked_files)[: len(context.tracked_files) // 2]
        for path in to_remove:
            context.tracked_files.pop(path, None)
            try:
                context.parser.invalidate_cache(path)
            except Exception as e:
                logger.debug(f"Failed to drop {path} from analysis context: {e}")

    def _evict_stale(self, now: float) -> None:
        stale = [root for root, ctx in self._contexts.items() if now - ctx.last_accessed > self.ttl_seconds]
        for root in stale:
            logger.debug(f"Evicting idle analysis context {root}")
            self._drop(root)

    def _evict_least_recent(self) -> None:
        oldest = min(self._contexts.values(), key=lambda ctx: ctx.last_accessed)
        logger.debug(f"Evicting least recently used analysis context {oldest.workspace_root}")
        self._drop(oldest.workspace_root)

    def _drop(self, workspace_root: str) -> None:
        context = self._contexts.pop(workspace_root, None)
        if context is not None:
            context.tracked_files.clear()
            context.parser.clear_all_caches()

    def evict_workspace(self, workspace_root: str) -> None:
        """Remove one workspace's context if present."""
        with self._lock:
            self._drop(os.path.abspath(workspace_root))

    def evict_all(self) -> None:
        """Remove every context."""
        with self._lock:
            for root in list(self._contexts):
                self._drop(root)

    def has_workspace(self, workspace_root: str) -> bool:
        with self._lock:
            return os.path.abspath(workspace_root) in self._contexts

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                context_count=len(self._contexts),
                tracked_file_count=sum(len(ctx.tracked_files) for ctx in self._contexts.values()),
            )
