"""Configuration package."""

from fintrack.config.settings import (
    AppSettings,
    BudgetSettings,
    GoalSettings,
    InstallmentSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "BudgetSettings",
    "GoalSettings",
    "InstallmentSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
