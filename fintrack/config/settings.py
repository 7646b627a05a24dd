"""
Configuration Management for the Financial Tracking Engine

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All tunable thresholds live here.
The engines read them at call time, so a deployment can move the
risk window or the alert level without touching domain code.
"""

from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GoalSettings(BaseSettings):
    """Goal classification and validation thresholds."""

    model_config = SettingsConfigDict(
        env_prefix="GOAL_",
        extra="ignore"
    )

    risk_window_days: int = Field(
        default=30,
        ge=0,
        description="Goals due within this many days are checked for risk"
    )
    risk_progress_threshold: int = Field(
        default=80,
        ge=0,
        le=100,
        description="Progress (%) below which an imminent goal is at risk"
    )
    near_completion_threshold: int = Field(
        default=90,
        ge=0,
        le=100,
        description="Progress (%) from which an active goal is near completion"
    )
    name_min_length: int = Field(
        default=2,
        ge=1,
        description="Minimum goal name length"
    )
    name_max_length: int = Field(
        default=100,
        ge=1,
        description="Maximum goal name length"
    )

    @model_validator(mode='after')
    def validate_name_bounds(self) -> 'GoalSettings':
        if self.name_min_length > self.name_max_length:
            raise ValueError("name_min_length cannot exceed name_max_length")
        return self


class BudgetSettings(BaseSettings):
    """Budget period and alert configuration."""

    model_config = SettingsConfigDict(
        env_prefix="BUDGET_",
        extra="ignore"
    )

    alert_threshold: int = Field(
        default=80,
        ge=0,
        le=100,
        description="Usage (%) from which a budget is reported as an alert"
    )
    warning_level: int = Field(
        default=70,
        ge=0,
        le=100,
        description="Usage (%) from which a budget is in the warning band"
    )
    critical_level: int = Field(
        default=90,
        ge=0,
        le=100,
        description="Usage (%) from which a budget is in the critical band"
    )
    min_year: int = Field(
        default=2020,
        description="Earliest year a budget period may use"
    )


class InstallmentSettings(BaseSettings):
    """Installment series limits."""

    model_config = SettingsConfigDict(
        env_prefix="INSTALLMENT_",
        extra="ignore"
    )

    min_installments: int = Field(
        default=2,
        ge=2,
        description="Shortest series a purchase can be split into"
    )
    max_installments: int = Field(
        default=60,
        ge=2,
        description="Longest series a purchase can be split into"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    debug_mode: bool = Field(
        default=False,
        description="Log at DEBUG regardless of log_level"
    )
    log_level: str = Field(
        default="INFO",
        description="Minimum level for local structured logs"
    )

    # Service layer retry policy for storage commits
    storage_retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts for a commit that fails with a transient storage error"
    )
    storage_retry_max_wait_seconds: float = Field(
        default=4.0,
        ge=0.0,
        description="Upper bound of the exponential wait between attempts"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def goals(self) -> GoalSettings:
        return GoalSettings()

    @property
    def budgets(self) -> BudgetSettings:
        return BudgetSettings()

    @property
    def installments(self) -> InstallmentSettings:
        return InstallmentSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("goals", "budgets", "installments", "app"):
        try:
            _ = getattr(settings, name)
            results[name] = True
        except ValueError as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
