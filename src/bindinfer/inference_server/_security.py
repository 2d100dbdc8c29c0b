"""Path validation utilities for inference operations."""

import os
from pathlib import Path
from typing import Any


def get_project_root() -> str:
    """Get project root from environment or default.

    Returns:
        Project root directory path from MCP_FILE_ROOT environment variable,
        or current directory as fallback
    """
    return os.getenv("MCP_FILE_ROOT", ".")


def validate_file_path(file_path: str, project_root: str) -> dict[str, Any]:
    """Resolve a file path and check that it stays inside the project root.

    Args:
        file_path: Absolute path, or path relative to project_root
        project_root: Root directory of the project

    Returns:
        Dictionary with "valid" and either "abs_path" or "error"
    """
    if not file_path or not file_path.strip():
        return {"valid": False, "error": "File path is empty"}

    try:
        project_path = Path(project_root).resolve()
        path = Path(file_path)
        abs_path = path.resolve() if path.is_absolute() else (project_path / path).resolve()

        try:
            abs_path.relative_to(project_path)
        except ValueError:
            return {"valid": False, "error": f"File path outside project root: {file_path}"}

        return {"valid": True, "abs_path": abs_path}

    except (OSError, RuntimeError) as e:
        return {"valid": False, "error": f"Invalid file path: {str(e)}"}
