"""Application settings using Pydantic."""

from functools import lru_cache

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StageOptions(BaseModel):
    """Chunking and concurrency knobs for one stage."""

    chunk_size: int = Field(default=50, gt=0, description="Records per sequential chunk")
    concurrency_limit: int = Field(
        default=20, gt=0, description="Max record operations in flight inside a chunk"
    )
    inter_chunk_delay_ms: int = Field(
        default=100, ge=0, description="Pause between chunks to smooth downstream load"
    )

    @property
    def inter_chunk_delay_seconds(self) -> float:
        return self.inter_chunk_delay_ms / 1000


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CLARITY_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Storage
    database_url: str = "sqlite:///data/clarity.db"

    # Stage execution defaults
    default_stage_options: StageOptions = Field(default_factory=StageOptions)
    stage_options: dict[str, StageOptions] = Field(
        default_factory=lambda: {
            # Third-party lookups are rate limited
            "external_lookup": StageOptions(chunk_size=25, concurrency_limit=5, inter_chunk_delay_ms=250),
        }
    )
    disabled_stages: list[str] = Field(default_factory=list)
    continue_on_stage_error: bool = False

    # Watchdog
    watchdog_interval_seconds: float = Field(default=60.0, gt=0)
    stall_threshold_seconds: float = Field(default=300.0, gt=0)

    # Matching
    match_confidence_threshold: float = Field(default=0.85, ge=0.0, le=1.0)

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    def options_for(self, stage_name: str) -> StageOptions:
        """Stage options with per-stage overrides applied."""
        return self.stage_options.get(stage_name, self.default_stage_options)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
