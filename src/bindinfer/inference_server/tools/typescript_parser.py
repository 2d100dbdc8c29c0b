"""
TypeScript parser with tree-sitter integration and caching.

Each analysis context owns one parser. Parsed trees are cached per file and
invalidated when the file's modification time moves forward.
"""

import os
import time
from collections import OrderedDict
from dataclasses import replace
from typing import Any

import tree_sitter_typescript as ts_typescript
from tree_sitter import Language, Parser

from ..models.inference_models import (
    AnalysisError,
    CacheEntry,
    ParseResult,
    ParserStats,
)


def extract_node_text(node: Any, source: bytes) -> str:
    """Return the source text covered by a tree-sitter node."""
    return source[node.start_byte : node.end_byte].decode("utf-8", errors="replace")


class TypeScriptParser:
    """
    TypeScript parser with tree-sitter integration and caching.

    Features:
    - Separate parsers for TypeScript (.ts) and TSX (.tsx) files
    - LRU cache bounded by file count
    - Graceful error handling for malformed files
    """

    def __init__(self, max_cached_files: int = 100, max_file_size_mb: int = 5):
        """
        Initialize TypeScript parser with configuration.

        Args:
            max_cached_files: Maximum number of parsed files kept in memory
            max_file_size_mb: Maximum individual file size to parse
        """
        self.max_cached_files = max_cached_files
        self.max_file_size_mb = max_file_size_mb
        self.max_file_size_bytes = max_file_size_mb * 1024 * 1024

        self._ts_parser = None
        self._tsx_parser = None
        self._init_parsers()

        # LRU cache for parsed ASTs
        self._ast_cache: OrderedDict[str, CacheEntry] = OrderedDict()
        self._stats = ParserStats()

    def _init_parsers(self) -> None:
        """Initialize tree-sitter parsers for TypeScript and TSX."""
        self._ts_parser = Parser()
        self._tsx_parser = Parser()
        self._ts_parser.language = Language(ts_typescript.language_typescript())
        self._tsx_parser.language = Language(ts_typescript.language_tsx())

    def parse_file(self, file_path: str) -> ParseResult:
        """
        Parse a TypeScript or TSX file.

        Args:
            file_path: Path to the TypeScript/TSX file

        Returns:
            ParseResult with success status, AST tree, source bytes and any errors
        """
        start_time = time.perf_counter()

        cached = self._get_cached_entry(file_path)
        if cached is not None:
            self._stats.cache_hits += 1
            cached.access_count += 1
            self._ast_cache.move_to_end(file_path)
            return ParseResult(success=True, tree=cached.tree, source=cached.source)

        if not os.path.exists(file_path):
            error = AnalysisError(code="NOT_FOUND", message=f"File not found: {file_path}", file=file_path)
            return ParseResult(success=False, errors=[error])

        try:
            file_size = os.path.getsize(file_path)
            if file_size > self.max_file_size_bytes:
                error = AnalysisError(
                    code="FILE_TOO_LARGE",
                    message=f"File exceeds size limit ({self.max_file_size_mb}MB): {file_path}",
                    file=file_path,
                )
                return ParseResult(success=False, errors=[error])

            with open(file_path, "rb") as f:
                content_bytes = f.read()
            modified_time = os.path.getmtime(file_path)
        except OSError as e:
            error = AnalysisError(code="PERMISSION_DENIED", message=f"Cannot read file: {e}", file=file_path)
            return ParseResult(success=False, errors=[error])

        self._stats.cache_misses += 1
        result = self.parse_source(content_bytes, file_path)

        parse_time_ms = (time.perf_counter() - start_time) * 1000
        result.parse_time_ms = parse_time_ms
        self._stats.files_parsed += 1
        self._stats.total_parse_time_ms += parse_time_ms

        if result.success and result.tree is not None:
            self._cache_result(file_path, result.tree, content_bytes, modified_time)

        return result

    def parse_source(self, content: bytes | str, file_path: str = "<memory>.ts") -> ParseResult:
        """Parse in-memory source. The extension of file_path selects TS or TSX."""
        content_bytes = content.encode("utf-8") if isinstance(content, str) else content
        parser = self._tsx_parser if file_path.endswith(".tsx") else self._ts_parser

        try:
            tree = parser.parse(content_bytes)
        except (ValueError, TypeError) as e:
            error = AnalysisError(code="PARSE_ERROR", message=f"Failed to parse file: {e}", file=file_path)
            return ParseResult(success=False, errors=[error])

        errors = []
        if tree.root_node.has_error:
            for node in self._find_error_nodes(tree.root_node):
                errors.append(
                    AnalysisError(
                        code="PARSE_ERROR",
                        message=f"Syntax error at line {node.start_point[0] + 1}",
                        file=file_path,
                        line=node.start_point[0] + 1,
                    )
                )

        return ParseResult(success=True, tree=tree, source=content_bytes, errors=errors)

    def _find_error_nodes(self, node: Any) -> list[Any]:
        """Recursively find all error nodes in the AST."""
        errors = []
        if node.type == "ERROR" or node.is_missing:
            errors.append(node)

        for child in node.children:
            errors.extend(self._find_error_nodes(child))

        return errors

    def _get_cached_entry(self, file_path: str) -> CacheEntry | None:
        if file_path not in self._ast_cache:
            return None

        cache_entry = self._ast_cache[file_path]

        try:
            if os.path.getmtime(file_path) > cache_entry.modified_time:
                self.invalidate_cache(file_path)
                return None
        except OSError:
            # File was deleted
            self.invalidate_cache(file_path)
            return None

        return cache_entry

    def get_cached_tree(self, file_path: str) -> Any | None:
        """
        Get cached AST for a file if available and valid.

        Does not touch hit/miss statistics, only parse_file() does.
        """
        entry = self._get_cached_entry(file_path)
        return entry.tree if entry is not None else None

    def invalidate_cache(self, file_path: str) -> None:
        """
        Remove a file from the cache.

        Args:
            file_path: Path to the file to remove from cache
        """
        self._ast_cache.pop(file_path, None)

    def _cache_result(self, file_path: str, tree: Any, source: bytes, modified_time: float) -> None:
        """Cache a parse result with LRU eviction."""
        while len(self._ast_cache) >= self.max_cached_files:
            self._ast_cache.popitem(last=False)

        self._ast_cache[file_path] = CacheEntry(tree=tree, source=source, modified_time=modified_time)

    def clear_all_caches(self) -> None:
        """Drop every cached tree."""
        self._ast_cache.clear()

    def get_parser_stats(self) -> ParserStats:
        """
        Get current parser statistics.

        Returns:
            ParserStats with current performance metrics
        """
        return replace(self._stats, cached_files=len(self._ast_cache))
