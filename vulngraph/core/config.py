"""Application configuration loaded from environment variables."""

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Allowed URL schemes for NEO4J_URI (module-level so validators can use it).
VALID_NEO4J_URI_PREFIXES = (
    "bolt://",
    "bolt+s://",
    "bolt+ssc://",
    "neo4j://",
    "neo4j+s://",
    "neo4j+ssc://",
)


class Settings(BaseSettings):
    """Validated application settings from env and optional .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )

    APP_ENV: Literal["dev", "prod"] = "dev"
    DEBUG: bool = False
    API_V1_PREFIX: str = "/api/v1"

    # Neo4j: the graph store. Password is required before the first query, not at import.
    NEO4J_URI: str = Field(
        default="bolt://localhost:7687",
        validation_alias=AliasChoices("NEO4J_URI", "NEO4J_URL"),
    )
    NEO4J_USERNAME: str = Field(
        default="neo4j",
        validation_alias=AliasChoices("NEO4J_USERNAME", "NEO4J_USER"),
    )
    NEO4J_PASSWORD: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("NEO4J_PASSWORD", "NEO4J_PASS"),
    )
    NEO4J_DATABASE: str = "neo4j"

    # LiteLLM (OpenAI-compatible chat completions): optional; enrichment degrades to heuristics
    LITELLM_BASE_URL: str | None = None
    LITELLM_API_KEY: SecretStr | None = None
    GRAPH_AGENT_MODEL: str = "o4-mini"
    CHAT_AGENT_MODEL: str = "o4-mini"
    GRAPH_AGENT_TEMPERATURE: float = 0.2
    CHAT_AGENT_TEMPERATURE: float = 0.1
    LLM_REQUEST_TIMEOUT_SEC: float = 60.0

    # Ingestion
    INGEST_FINGERPRINT_ENABLED: bool = True
    # Wipes the whole graph before writing; only for single-snapshot deployments.
    INGEST_RESET_GRAPH: bool = False
    HEURISTIC_MAX_PAIRWISE_GROUP: int = 200
    MAX_FINDINGS_PER_REQUEST: int = 10_000

    @field_validator("NEO4J_URI")
    @classmethod
    def validate_neo4j_uri(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("NEO4J_URI must be set and non-empty")
        if not any(v.strip().startswith(prefix) for prefix in VALID_NEO4J_URI_PREFIXES):
            raise ValueError(
                "NEO4J_URI must be a Bolt or Neo4j URI (e.g. bolt://localhost:7687)"
            )
        return v.strip()

    @field_validator("NEO4J_USERNAME", "NEO4J_DATABASE")
    @classmethod
    def validate_non_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Neo4j username and database must be non-empty")
        return v.strip()

    @field_validator("LITELLM_BASE_URL")
    @classmethod
    def validate_litellm_base_url(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        s = v.strip().rstrip("/").lower()
        if not (s.startswith("http://") or s.startswith("https://")):
            raise ValueError(
                "LITELLM_BASE_URL must use http or https (e.g. http://localhost:4000)"
            )
        return v.strip().rstrip("/")

    @field_validator("GRAPH_AGENT_TEMPERATURE", "CHAT_AGENT_TEMPERATURE")
    @classmethod
    def validate_temperature(cls, v: float) -> float:
        if v < 0 or v > 2:
            raise ValueError("Agent temperatures must be between 0 and 2")
        return v

    @field_validator("LLM_REQUEST_TIMEOUT_SEC")
    @classmethod
    def validate_llm_timeout(cls, v: float) -> float:
        if v <= 0 or v > 300:
            raise ValueError(
                "LLM_REQUEST_TIMEOUT_SEC must be greater than 0 and at most 300"
            )
        return v

    @field_validator("HEURISTIC_MAX_PAIRWISE_GROUP")
    @classmethod
    def validate_pairwise_group(cls, v: int) -> int:
        if v < 2 or v > 5000:
            raise ValueError("HEURISTIC_MAX_PAIRWISE_GROUP must be between 2 and 5000")
        return v

    @field_validator("MAX_FINDINGS_PER_REQUEST")
    @classmethod
    def validate_max_findings(cls, v: int) -> int:
        if v < 1 or v > 100_000:
            raise ValueError("MAX_FINDINGS_PER_REQUEST must be between 1 and 100000")
        return v


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance (safe to call from dependencies)."""
    return Settings()


settings = get_settings()
