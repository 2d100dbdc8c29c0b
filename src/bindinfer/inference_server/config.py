"""Configuration management for the inference server."""

import os
from dataclasses import dataclass


@dataclass
class InferenceServerConfig:
    """Configuration class for the inference server."""

    # Analysis context cache
    max_cached_projects: int = 5
    max_files_per_project: int = 100
    project_ttl_seconds: int = 300

    # Type oracle
    hover_timeout_ms: int = 3000
    language_server_command: str = ""  # Empty disables the language server oracle
    use_language_service: bool = True

    # Scratch components, relative to the workspace root
    scratch_dir: str = ".bindinfer/tmp"

    # Runtime Configuration
    log_level: str = "INFO"

    @classmethod
    def from_environment(cls) -> "InferenceServerConfig":
        """Create configuration from environment variables."""
        return cls(
            max_cached_projects=int(os.getenv("BINDINFER_MAX_CACHED_PROJECTS", "5")),
            max_files_per_project=int(os.getenv("BINDINFER_MAX_FILES_PER_PROJECT", "100")),
            project_ttl_seconds=int(os.getenv("BINDINFER_PROJECT_TTL_SECONDS", "300")),
            hover_timeout_ms=int(os.getenv("BINDINFER_HOVER_TIMEOUT_MS", "3000")),
            language_server_command=os.getenv("BINDINFER_LANGUAGE_SERVER_COMMAND", ""),
            use_language_service=os.getenv("BINDINFER_USE_LANGUAGE_SERVICE", "true").lower() == "true",
            scratch_dir=os.getenv("BINDINFER_SCRATCH_DIR", ".bindinfer/tmp"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )

    def validate(self) -> tuple[bool, list[str]]:
        """Validate configuration settings."""
        errors = []

        if self.max_cached_projects <= 0:
            errors.append("max_cached_projects must be positive")

        if self.max_files_per_project <= 0:
            errors.append("max_files_per_project must be positive")

        if self.project_ttl_seconds <= 0:
            errors.append("project_ttl_seconds must be positive")

        if self.hover_timeout_ms <= 0:
            errors.append("hover_timeout_ms must be positive")

        if not self.scratch_dir:
            errors.append("scratch_dir cannot be empty")
        elif os.path.isabs(self.scratch_dir):
            errors.append("scratch_dir must be relative to the workspace root")

        valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.log_level not in valid_log_levels:
            errors.append(f"log_level must be one of {valid_log_levels}")

        return len(errors) == 0, errors

    def __post_init__(self):
        """Post-initialization validation."""
        is_valid, errors = self.validate()
        if not is_valid:
            raise ValueError(f"Invalid configuration: {', '.join(errors)}")


# Global configuration instance
_config: InferenceServerConfig | None = None


def get_config() -> InferenceServerConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = InferenceServerConfig.from_environment()
    return _config


def set_config(config: InferenceServerConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config


def reset_config() -> None:
    """Reset the global configuration instance."""
    global _config
    _config = None
