"""Engine configuration loaded from environment variables."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    """Settings for the lifecycle engine (env prefix FARM_HOUSING_)."""

    model_config = SettingsConfigDict(
        env_prefix="FARM_HOUSING_", env_file=".env", extra="ignore"
    )

    # Document store retries (exponential)
    store_max_attempts: int = Field(default=3, ge=1)
    store_backoff_seconds: float = Field(default=0.5, ge=0)
    store_backoff_multiplier: float = Field(default=2.0, ge=1)

    # Notification sends (fixed backoff)
    notification_max_attempts: int = Field(default=3, ge=1)
    notification_backoff_seconds: float = Field(default=1.0, ge=0)
    notification_workers: int = Field(default=4, ge=1)  # background delivery threads

    # Reconcile a farm's rooms whenever its workers change in the store
    auto_repair_on_change: bool = False
