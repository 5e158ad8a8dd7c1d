"""
Configuration for Clarity Budgets

Every setting comes from the environment (or a local .env file) through
pydantic-settings, grouped by the service it configures.

DESIGN DECISION: Each group is validated on first use, not at import.
The ledger runs in memory without Sheets and without Gemini, so a
missing key only disables the feature that needs it.
"""

from functools import lru_cache
from pathlib import Path

import structlog
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


logger = structlog.get_logger(__name__)

ENV_FILE = ".env"


class GoogleSheetsSettings(BaseSettings):
    """Where the ledger spreadsheet lives and how its tabs are named."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        env_file=ENV_FILE,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    credentials_path: str = Field(
        ...,
        description="Service account key file with access to the spreadsheet"
    )
    spreadsheet_id: str = Field(
        ...,
        description="Spreadsheet holding one user's ledger"
    )

    categories_sheet_name: str = "Categories"
    expenses_sheet_name: str = "Expenses"
    incomes_sheet_name: str = "Incomes"
    budgets_sheet_name: str = "Budgets"
    loans_sheet_name: str = "Loans"
    settings_sheet_name: str = Field(
        default="Settings",
        description="Key/value tab for preferences such as the currency"
    )
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Append-only tab for audit events"
    )

    @field_validator("credentials_path")
    @classmethod
    def check_credentials_file(cls, v: str) -> str:
        # Not fatal: the file may be mounted after startup
        if not Path(v).exists():
            logger.warning("credentials_file_missing", path=v)
        return v


class GeminiSettings(BaseSettings):
    """Model used for categorization and saving tips."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        env_file=ENV_FILE,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    api_key: str = Field(..., description="Google AI Studio key")
    model_name: str = "gemini-1.5-flash"
    max_tokens: int = Field(
        default=1024,
        ge=100,
        le=8192,
        description="Upper bound on reply length for either agent"
    )
    temperature: float = Field(
        default=0.2,
        ge=0.0,
        le=1.0,
    )


class AppSettings(BaseSettings):
    """Behaviour of the app itself."""

    model_config = SettingsConfigDict(
        env_file=ENV_FILE,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_environment: str = "development"
    debug_mode: bool = False
    log_level: str = Field(
        default="INFO",
        description="Minimum level for the local structured log"
    )

    default_currency: str = Field(
        default="USD",
        min_length=3,
        max_length=3,
        description="Display currency used until the user picks one"
    )
    seed_default_categories: bool = Field(
        default=True,
        description="Create the starter categories for a brand new ledger"
    )

    @field_validator("default_currency")
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()


class Settings:
    """
    Entry point to all setting groups.

    Each property builds its group on access, so reading .app never
    fails because Gemini or Sheets is unconfigured.
    """

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """Shared Settings instance. get_settings.cache_clear() forces a reload."""
    return Settings()


SETTING_GROUPS = ("google_sheets", "gemini", "app")


def validate_all_settings() -> dict[str, bool]:
    """
    Check which setting groups load.

    Returns {group: ok} plus "<group>_error" with the reason for each
    group that failed. Used by the Settings page.
    """
    settings = get_settings()
    results: dict = {}

    for group in SETTING_GROUPS:
        try:
            getattr(settings, group)
        except ValueError as e:
            results[group] = False
            results[f"{group}_error"] = str(e)
        else:
            results[group] = True

    return results
