"""
Configuration Management for Expense Tracker

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class FirestoreSettings(BaseSettings):
    """Cloud Firestore document store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FIRESTORE_",
        extra="ignore"
    )

    project_id: str = Field(
        ...,
        description="Google Cloud project hosting the Firestore database"
    )
    credentials_path: Optional[str] = Field(
        default=None,
        description="Path to a service account credentials JSON. "
                    "Application default credentials are used when unset."
    )
    database: str = Field(
        default="(default)",
        description="Firestore database id"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: Optional[str]) -> Optional[str]:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if v and not Path(v).exists():
            import warnings
            warnings.warn(
                f"Firestore credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


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

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    storage_backend: Literal["memory", "firestore"] = Field(
        default="memory",
        description="Which document store backs the tracker"
    )

    # Records written under older schemas may carry no category at all
    uncategorized_category_id: str = Field(
        default="uncategorized",
        min_length=1,
        description="Category id assigned to records without any category reference"
    )
    uncategorized_category_name: str = Field(
        default="Uncategorized",
        min_length=1,
        description="Category name assigned to records without any category reference"
    )
    default_summary_color: str = Field(
        default="85C1E9",
        pattern="^[0-9A-Fa-f]{6}$",
        description="Color key for category names missing from the color table"
    )

    # Audit trail
    persist_audit_events: bool = Field(
        default=False,
        description="Also write audit events to the document store"
    )

    # Export
    csv_export_filename: str = Field(
        default="expenses.csv",
        description="File name offered for CSV exports"
    )
    json_export_filename: str = Field(
        default="expenses.json",
        description="File name offered for JSON exports"
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

    # Note: These are loaded lazily to allow partial configuration

    @property
    def firestore(self) -> FirestoreSettings:
        return FirestoreSettings()

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
    Firestore settings are only checked when Firestore is the selected backend.
    """
    results = {}

    settings = get_settings()

    try:
        app = settings.app
        results["app"] = True
    except Exception as e:
        results["app"] = False
        results["app_error"] = str(e)
        return results

    if app.storage_backend == "firestore":
        try:
            _ = settings.firestore
            results["firestore"] = True
        except Exception as e:
            results["firestore"] = False
            results["firestore_error"] = str(e)

    return results
