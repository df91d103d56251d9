"""
Configuration management for registry_resolver.

Uses pydantic-settings for type-safe configuration with automatic
environment variable loading and validation.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from registry_resolver.constants import (
    ARBITRATION_MODEL,
    DEFAULT_WORKERS,
    EMBEDDING_DIMENSION,
    EMBEDDING_MODEL,
    REGISTRY_CACHE_TTL_SECONDS,
)


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Secrets default to empty and are checked by the accessor functions below,
    so the engine can be built with in-process collaborators and no credentials.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # Ignore extra env vars
    )

    # OpenAI Configuration
    openai_api_key: str = Field(
        default="",
        description="OpenAI API key for embeddings and arbitration",
    )
    embedding_model: str = Field(default=EMBEDDING_MODEL)
    embedding_dimension: int = Field(default=EMBEDDING_DIMENSION, gt=0)
    embedding_timeout_seconds: float = Field(default=10.0, gt=0)
    arbitration_model: str = Field(default=ARBITRATION_MODEL)
    arbitration_timeout_seconds: float = Field(default=20.0, gt=0)
    arbitration_max_attempts: int = Field(
        default=2,
        ge=1,
        description="Oracle calls allowed before a malformed response counts as failure",
    )

    # The system's own mail domain; never treated as an external contact address
    operating_domain: str | None = Field(default=None)

    # Neo4j Configuration (registry storage)
    neo4j_uri: str = Field(default="bolt://localhost:7687")
    neo4j_user: str = Field(default="neo4j")
    neo4j_password: str = Field(default="")
    neo4j_database: str = Field(default="neo4j")
    registry_label: str = Field(default="RegistryEntry")
    registry_vector_index: str = Field(default="registry_entry_embedding")

    # Caching
    cache_dir: Path = Field(default=Path("data/cache"))
    registry_cache_ttl_seconds: int = Field(default=REGISTRY_CACHE_TTL_SECONDS, ge=0)

    # Operator-curated override rules (JSON); built-in table when unset
    override_table_path: Path | None = Field(default=None)

    max_workers: int = Field(default=DEFAULT_WORKERS, ge=1)

    @field_validator("neo4j_password", "openai_api_key", mode="before")
    @classmethod
    def strip_whitespace(cls, v: str) -> str:
        """Strip whitespace from string values."""
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("operating_domain", mode="before")
    @classmethod
    def normalize_domain(cls, v: str | None) -> str | None:
        """Lowercase the domain, drop a leading '@', convert blanks to None."""
        if isinstance(v, str):
            v = v.strip().lower().lstrip("@")
            return v if v else None
        return v

    @field_validator("override_table_path", mode="before")
    @classmethod
    def empty_string_to_none(cls, v):
        """Convert empty strings to None for optional fields."""
        if isinstance(v, str):
            v = v.strip()
            return v if v else None
        return v


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()


def get_openai_api_key() -> str:
    """Get OpenAI API key from settings."""
    key = get_settings().openai_api_key
    if not key:
        raise ValueError("OPENAI_API_KEY not set in .env file")
    return key


def get_neo4j_uri() -> str:
    """Get Neo4j URI from settings."""
    return get_settings().neo4j_uri


def get_neo4j_user() -> str:
    """Get Neo4j username from settings."""
    return get_settings().neo4j_user


def get_neo4j_password() -> str:
    """Get Neo4j password from settings."""
    password = get_settings().neo4j_password
    if not password:
        raise ValueError("NEO4J_PASSWORD not set in .env file")
    return password

