"""Settings — переменные окружения TIERTRANSFER_* через pydantic-settings."""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from tiertransfer.core.math.discount import (
    MAX_BULK_SIZE_DEFAULT,
    MAX_COMBINED_RATE_BPS_DEFAULT,
    MAX_COMBINED_RATE_BPS_LIMIT,
    DiscountPolicyConfig,
)
from tiertransfer.orchestrator.transfer_orchestrator import OrchestratorConfig


class Settings(BaseSettings):
    """Настройки, загружаемые из окружения."""

    app_name: str = Field(default="tiertransfer", description="Имя приложения в логах")
    log_level: str = Field(default="INFO", description="Уровень логирования")
    log_json: bool = Field(default=True, description="JSON логи (False — console renderer)")

    max_bulk_size: int = Field(
        default=MAX_BULK_SIZE_DEFAULT, ge=1, description="Лимит элементов bulk-операции"
    )
    max_combined_rate_bps: int = Field(
        default=MAX_COMBINED_RATE_BPS_DEFAULT,
        ge=0,
        le=MAX_COMBINED_RATE_BPS_LIMIT,
        description="Cap суммарной скидки (bps)",
    )
    record_audit_trail: bool = Field(
        default=True, description="Сохранять TransferRecord (и отклонять повторный trace_id)"
    )

    model_config = SettingsConfigDict(
        env_prefix="TIERTRANSFER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v.upper()

    def discount_policy(self) -> DiscountPolicyConfig:
        return DiscountPolicyConfig(
            max_combined_rate_bps=self.max_combined_rate_bps,
            max_bulk_size=self.max_bulk_size,
        )

    def orchestrator_config(self) -> OrchestratorConfig:
        return OrchestratorConfig(record_audit_trail=self.record_audit_trail)


@lru_cache()
def get_settings() -> Settings:
    """Кэшированный экземпляр Settings (окружение читается один раз)."""
    return Settings()
