"""
Configuration Management for the Ledger Engine

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Policy switches that the business has not settled (such as whether dues
accrue while a member is on leave) live here instead of in the engine code.
"""

from decimal import Decimal
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LedgerSettings(BaseSettings):
    """Ledger policy configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Well-known categories
    dues_category_name: str = Field(
        default="Mensalidades",
        description="Income category that holds membership dues"
    )
    transfer_category_name: str = Field(
        default="Transferência",
        description="Category used for both legs of an account transfer"
    )

    # Dues policy
    on_leave_accrues_dues: bool = Field(
        default=False,
        description="Whether months spent on leave still generate dues"
    )

    # Payable bills
    recurring_bill_months: int = Field(
        default=12,
        ge=1,
        le=120,
        description="How many monthly bills a recurring schedule creates"
    )

    # Linking
    link_amount_tolerance: Decimal = Field(
        default=Decimal("0.00"),
        ge=0,
        description="Allowed difference between linked payments and transaction amount"
    )
    max_link_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts for a link operation when the store fails transiently"
    )
    link_retry_backoff_seconds: float = Field(
        default=0.2,
        ge=0.0,
        description="Base of the exponential backoff between link attempts"
    )

    # Read cache
    cache_ttl_seconds: float = Field(
        default=30.0,
        ge=0.0,
        description="How long derived view-models may be served from cache"
    )

    # Display names for missing lookups
    unknown_name: str = Field(
        default="Desconhecido",
        description="Name shown for ids missing from a catalog"
    )
    uncategorized_name: str = Field(
        default="Sem Categoria",
        description="Name shown for transactions without a known category"
    )

    @field_validator('dues_category_name', 'transfer_category_name')
    @classmethod
    def validate_category_name(cls, v: str) -> str:
        """Category names are matched by name, so they cannot be blank."""
        if not v.strip():
            raise ValueError("Category name cannot be blank")
        return v.strip()


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

    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Minimum level for structured logs"
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
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

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

    try:
        _ = settings.ledger
        results["ledger"] = True
    except Exception as e:
        results["ledger"] = False
        results["ledger_error"] = str(e)

    try:
        _ = settings.app
        results["app"] = True
    except Exception as e:
        results["app"] = False
        results["app_error"] = str(e)

    return results
