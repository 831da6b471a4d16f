"""Pydantic-based settings for the Rosetta gateway."""

from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_TRUNCATION_STEPS = (
    {"history_retention_percent": 80, "use_simplified_prompt": False},
    {"history_retention_percent": 60, "use_simplified_prompt": False},
    {"history_retention_percent": 40, "use_simplified_prompt": True},
    {"history_retention_percent": 20, "use_simplified_prompt": True},
)


class Settings(BaseSettings):
    """Configuration settings for Rosetta Gateway."""

    model_config = SettingsConfigDict(
        env_prefix="ROSETTA_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Service settings
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8010, description="Server port")
    log_level: str = Field(default="INFO", description="Logging level")

    # Detection settings
    window_size: int = Field(default=2048, ge=16, description="Sliding window size in characters")
    context_chars: int = Field(default=160, ge=0, description="Characters of context kept before a candidate")
    max_pending_chars: int = Field(
        default=64 * 1024, ge=256, description="Largest unfinished tool call the scanner will hold back"
    )
    patterns_file: Optional[str] = Field(default=None, description="JSON file replacing the default pattern tables")
    tool_id_prefix: str = Field(default="toolu_", description="Prefix for generated tool call ids")

    # Confidence thresholds
    extraction_min_confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    force_tool_use_confidence: float = Field(default=0.7, ge=0.0, le=1.0)
    stop_tool_use_confidence: float = Field(default=0.3, ge=0.0, le=1.0)

    # Output settings
    target_dialect: str = Field(default="anthropic", description="Vocabulary used for terminal reasons")
    sentinel_values: List[str] = Field(default_factory=lambda: ["unknown", "default", "null", "none", "undefined"])
    discard_narrative_text: bool = Field(
        default=True, description="Drop text around tool calls recovered from buffered text blocks"
    )

    # Max tokens recovery
    truncation_steps: List[Dict[str, Any]] = Field(default_factory=lambda: [dict(step) for step in DEFAULT_TRUNCATION_STEPS])
    truncation_target_ratio: float = Field(default=0.8, gt=0.0, le=1.0)
    max_truncation_steps: int = Field(default=4, ge=1)
    chars_per_token: int = Field(default=4, ge=1)
    max_recovery_attempts: int = Field(default=2, ge=1, le=2)
    simplified_system_prompt: str = Field(
        default="You are a helpful assistant. Be concise.", description="System prompt used by reduced requests"
    )

    @field_validator("sentinel_values")
    @classmethod
    def lowercase_sentinels(cls, value: List[str]) -> List[str]:
        return [v.strip().lower() for v in value]

    @property
    def log_format(self) -> str:
        """Log message format."""
        return "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


# Global settings instance
settings = Settings()
