"""Application configuration."""

from __future__ import annotations

import hashlib
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from juno.errors import AggregateConfigurationMissingError, ConfigurationMissingError

COMMON_EXCLUDES = (
    "**/node_modules/**",
    "**/.git/**",
    "**/.venv/**",
    "**/__pycache__/**",
    "**/dist/**",
    "**/build/**",
    "**/out/**",
    "**/*.lock",
    "**/package-lock.json",
    "**/*.min.js",
    "**/*.map",
    "**/*.png",
    "**/*.jpg",
    "**/*.gif",
    "**/*.ico",
    "**/*.pdf",
    "**/*.zip",
    "**/*.vsix",
)


class Settings(BaseSettings):
    """Environment-driven settings, read-only to the core."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    api_key: str | None = Field(default=None, alias="JUNO_API_KEY")
    model: str = Field(default="gpt-3.5-turbo", alias="JUNO_MODEL")
    function_model: str = Field(default="gpt-3.5-turbo-0613", alias="JUNO_FUNCTION_MODEL")
    base_url: str = Field(default="https://api.openai.com/v1", alias="JUNO_BASE_URL")
    embedding_model: str = Field(default="text-embedding-ada-002", alias="JUNO_EMBEDDING_MODEL")
    temperature: float = Field(default=0.2, alias="JUNO_TEMPERATURE")
    request_timeout_seconds: float = Field(default=60.0, alias="JUNO_REQUEST_TIMEOUT_SECONDS")
    storage_root: Path = Field(default=Path.home() / ".juno", alias="JUNO_STORAGE_ROOT")
    # Repository indexing windows.
    chunk_size: int = Field(default=2000, alias="JUNO_CHUNK_SIZE")
    chunk_overlap: int = Field(default=300, alias="JUNO_CHUNK_OVERLAP")
    # Single-file indexing windows.
    file_chunk_size: int = Field(default=1000, alias="JUNO_FILE_CHUNK_SIZE")
    file_chunk_overlap: int = Field(default=200, alias="JUNO_FILE_CHUNK_OVERLAP")
    max_file_size: int = Field(default=30_000, alias="JUNO_MAX_FILE_SIZE")
    max_tool_rounds: int = Field(default=5, ge=1, alias="JUNO_MAX_TOOL_ROUNDS")
    embedding_concurrency: int = Field(default=1, ge=1, alias="JUNO_EMBEDDING_CONCURRENCY")
    context_top_k: int = Field(default=3, ge=1, alias="JUNO_CONTEXT_TOP_K")
    active_indexing: bool = Field(default=False, alias="JUNO_ACTIVE_INDEXING")
    # Comma-separated glob lists.
    include_globs: str = Field(default="**/*.*", alias="JUNO_INCLUDE")
    exclude_globs: str = Field(default=",".join(COMMON_EXCLUDES), alias="JUNO_EXCLUDE")
    assistant_name: str = Field(default="Juno", alias="JUNO_ASSISTANT_NAME")
    user_name: str | None = Field(default=None, alias="JUNO_USER_NAME")


# (attribute, environment key, friendly name)
_REQUIRED_SETTINGS = (
    ("api_key", "JUNO_API_KEY", "OpenAI API Key"),
    ("model", "JUNO_MODEL", "Chat Model"),
    ("function_model", "JUNO_FUNCTION_MODEL", "Function Calling Model"),
    ("embedding_model", "JUNO_EMBEDDING_MODEL", "Embedding Model"),
    ("base_url", "JUNO_BASE_URL", "API Base URL"),
)


def load_settings() -> Settings:
    """Load and validate settings."""

    return Settings()


def require_api_key(settings: Settings) -> str:
    """Return the API key or raise a recoverable configuration error."""

    if not settings.api_key:
        raise ConfigurationMissingError("JUNO_API_KEY", "OpenAI API Key")
    return settings.api_key


def check_required_settings(settings: Settings) -> None:
    """Raise for every required setting left empty, all at once."""

    missing = [
        ConfigurationMissingError(key, friendly_name)
        for attribute, key, friendly_name in _REQUIRED_SETTINGS
        if not getattr(settings, attribute)
    ]
    if len(missing) == 1:
        raise missing[0]
    if missing:
        raise AggregateConfigurationMissingError(missing)


def include_patterns(settings: Settings) -> list[str]:
    return _split_globs(settings.include_globs)


def exclude_patterns(settings: Settings) -> list[str]:
    return _split_globs(settings.exclude_globs)


def vectors_path(settings: Settings, workspace: Path) -> Path:
    """Return the workspace-scoped directory holding the vector index.

    Each workspace gets its own folder under the storage root, keyed by a
    digest of its resolved path.
    """
    digest = hashlib.sha1(str(workspace.resolve()).encode("utf-8")).hexdigest()[:12]
    return settings.storage_root.expanduser() / digest / "vectors"


def _split_globs(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]
