from functools import lru_cache

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings

DEFAULT_MAX_BATCH_SIZE = 5 * 1024 * 1024  # 5MB
DEFAULT_SAFETY_MARGIN = 1024  # 1KB

_LOG_LEVELS = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}


class BatcherSettings(BaseSettings):
    # Batch sizing
    max_batch_size: int = Field(DEFAULT_MAX_BATCH_SIZE, gt=0)
    safety_margin: int = Field(
        DEFAULT_SAFETY_MARGIN,
        gt=0,
        validation_alias=AliasChoices("safety_margin", "buffer_size"),
    )

    # Delivery
    max_retries: int = Field(3, ge=1)
    retry_delay_ms: int = Field(
        1000, ge=0, validation_alias=AliasChoices("retry_delay_ms", "retry_delay")
    )
    min_batch_interval_ms: int = Field(
        0, ge=0, validation_alias=AliasChoices("min_batch_interval_ms", "min_batch_interval")
    )
    continue_on_failure: bool = False

    # Logging / observability
    log_level: str = "INFO"
    log_json: bool = True
    enable_metrics: bool = True
    show_progress: bool = True
    progress_interval_sec: float = Field(
        5.0, gt=0, validation_alias=AliasChoices("progress_interval_sec", "progress_interval")
    )

    @field_validator("log_level")
    @classmethod
    def _upcase_level(cls, v: str) -> str:
        v = v.upper().strip()
        if v == "WARN":
            v = "WARNING"
        if v not in _LOG_LEVELS:
            raise ValueError(f"Invalid log level: {v}. Must be one of {sorted(_LOG_LEVELS)}")
        return v

    @model_validator(mode="after")
    def _margin_below_ceiling(self):
        if self.safety_margin >= self.max_batch_size:
            raise ValueError("safety_margin must be smaller than max_batch_size")
        return self

    @property
    def batch_ceiling(self) -> int:
        """Exclusive upper bound on the encoded size of a group."""
        return self.max_batch_size - self.safety_margin

    class Config:
        env_file = ".env"
        case_sensitive = False
        populate_by_name = True
        extra = "ignore"


@lru_cache()
def get_settings() -> BatcherSettings:
    return BatcherSettings()
