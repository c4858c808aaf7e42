"""
Configuration Management for Family Cash Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.

NOTE: This is *process* configuration. The shared master data that the
administrator edits at runtime (categories, members, minimum deposit) lives
in the store as a document; the values here only seed it on first run.
"""

from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )

    # Sheet names within the spreadsheet
    transactions_sheet_name: str = Field(
        default="Transactions",
        description="Name of the sheet for transaction records"
    )
    config_sheet_name: str = Field(
        default="Config",
        description="Name of the sheet holding the master configuration"
    )
    proofs_sheet_name: str = Field(
        default="Proofs",
        description="Name of the sheet holding chunked proof images"
    )
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class AdminSettings(BaseSettings):
    """
    Administrator credential policy.

    The password is never stored in clear text; generate the hash with
    `python -m cashbook.auth.credentials <password>`.
    """

    model_config = SettingsConfigDict(
        env_prefix="ADMIN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    username: str = Field(
        default="admin",
        min_length=1,
        description="Administrator username"
    )
    password_hash: Optional[str] = Field(
        default=None,
        description="PBKDF2-SHA256 hash of the administrator password"
    )


class MasterDefaultsSettings(BaseSettings):
    """Values used to bootstrap the master configuration document."""

    model_config = SettingsConfigDict(
        env_prefix="MASTER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    default_categories: str = Field(
        default="Umum,Pendidikan,Kesehatan,Rumah Tangga",
        description="Comma-separated list of initial categories"
    )
    default_members: str = Field(
        default="Ayah,Ibu",
        description="Comma-separated list of initial family members"
    )
    default_min_transfer: Decimal = Field(
        default=Decimal("50000"),
        ge=0,
        description="Initial minimum amount for a deposit"
    )

    @property
    def categories_list(self) -> list[str]:
        return [c.strip() for c in self.default_categories.split(",") if c.strip()]

    @property
    def members_list(self) -> list[str]:
        return [m.strip() for m in self.default_members.split(",") if m.strip()]


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
    app_title: str = Field(
        default="E-Manekat",
        description="Name shown in the UI, reports and share messages"
    )

    # Proof image limits
    max_proof_image_kb: int = Field(
        default=1024,
        ge=1,
        le=10240,
        description="Maximum proof image size in KiB"
    )
    supported_image_formats: str = Field(
        default="jpg,jpeg,png,webp,gif",
        description="Comma-separated list of supported image formats"
    )

    # Validation
    min_description_length: int = Field(
        default=5,
        ge=1,
        description="Minimum length of a transaction description"
    )

    # UX
    notification_duration_seconds: float = Field(
        default=4.0,
        gt=0,
        description="How long a notification banner stays visible"
    )

    # Store interaction
    request_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        description="Give up on a store write after this many seconds"
    )
    approval_conflict_policy: str = Field(
        default="check_status",
        pattern="^(check_status|last_write_wins)$",
        description="How concurrent approval decisions are resolved"
    )
    rejected_retention_days: Optional[int] = Field(
        default=None,
        ge=1,
        description="Purge rejected records older than this; None keeps them forever"
    )

    @property
    def supported_formats_list(self) -> list[str]:
        """Get supported formats as a list."""
        return [fmt.strip().lower() for fmt in self.supported_image_formats.split(",")]

    @property
    def supported_mime_types(self) -> set[str]:
        """MIME types matching the supported formats."""
        mimes = set()
        for fmt in self.supported_formats_list:
            mimes.add("image/jpeg" if fmt in ("jpg", "jpeg") else f"image/{fmt}")
        return mimes

    @property
    def max_proof_image_bytes(self) -> int:
        """Get max proof image size in bytes."""
        return self.max_proof_image_kb * 1024


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

    # Sub-settings are loaded lazily to allow partial configuration
    # (e.g. running in demo mode without Google Sheets).

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def admin(self) -> AdminSettings:
        return AdminSettings()

    @property
    def master_defaults(self) -> MasterDefaultsSettings:
        return MasterDefaultsSettings()

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

    sections = {
        "google_sheets": lambda: settings.google_sheets,
        "admin": lambda: settings.admin,
        "master_defaults": lambda: settings.master_defaults,
        "app": lambda: settings.app,
    }

    for name, load in sections.items():
        try:
            _ = load()
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    # An admin without a password hash cannot log in
    if results.get("admin") and not settings.admin.password_hash:
        results["admin"] = False
        results["admin_error"] = "ADMIN_PASSWORD_HASH is not set"

    return results
