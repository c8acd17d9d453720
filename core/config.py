"""Configuration management using pydantic-settings."""
from typing import Literal
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Configuration priority (highest to lowest):
    1. Runtime environment variables
    2. .env file
    3. Defaults in this class

    Categories:
    - Application: name, version, logging
    - Storage: durable record location and write policy
    - Incident Config: enumerations and field limits
    - Bulk Upload: CSV upload limits
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ============================================
    # APPLICATION
    # ============================================
    app_name: str = Field(
        default="Incident Tracker",
        description="Application name"
    )
    app_version: str = Field(
        default="0.1.0",
        description="Application version"
    )
    debug: bool = Field(
        default=True,
        description="Enable debug mode (console log renderer, auto-reload)"
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level"
    )
    cors_origin: str = Field(
        default="http://localhost:3000",
        description="Origin allowed to call the API (dashboard URL)"
    )

    # ============================================
    # STORAGE
    # ============================================
    storage_backend: Literal["local", "memory"] = Field(
        default="local",
        description="Durable record backend: 'local' (JSON file) or 'memory' (ephemeral)"
    )
    incidents_file_path: str = Field(
        default="data/incidents.json",
        description="Path of the JSON file holding the full incident collection"
    )
    auto_save: bool = Field(
        default=True,
        description="Persist the full collection after every accepted mutation"
    )
    on_corrupt_record: Literal["fail", "reset"] = Field(
        default="fail",
        description=(
            "What to do when the durable record cannot be read: 'fail' aborts startup, "
            "'reset' logs the loss and starts with an empty collection"
        )
    )
    persist_retry_attempts: int = Field(
        default=3,
        ge=1,
        description="Attempts per durable write before the mutation is rolled back"
    )
    persist_retry_min_wait: float = Field(
        default=0.1,
        ge=0,
        description="Minimum backoff between write attempts (seconds)"
    )
    persist_retry_max_wait: float = Field(
        default=2.0,
        ge=0,
        description="Maximum backoff between write attempts (seconds)"
    )
    persist_timeout_seconds: float | None = Field(
        default=10.0,
        description="[OPTIONAL] Upper bound for one durable write including retries"
    )

    # ============================================
    # INCIDENT CONFIGURATION
    # ============================================
    incident_categories: str = Field(
        default="IT,SAFETY,FACILITIES,OTHER",
        description="Comma-separated list of legal incident categories"
    )
    incident_severities: str = Field(
        default="LOW,MEDIUM,HIGH",
        description="Comma-separated list of legal incident severities"
    )
    title_min_length: int = Field(default=5, description="Minimum title length")
    title_max_length: int = Field(default=200, description="Maximum title length")
    description_min_length: int = Field(default=10, description="Minimum description length")
    description_max_length: int = Field(default=2000, description="Maximum description length")

    # ============================================
    # BULK UPLOAD
    # ============================================
    bulk_upload_max_file_size: int = Field(
        default=5 * 1024 * 1024,
        description="Maximum accepted CSV upload size in bytes"
    )
    bulk_upload_allowed_mime_types: str = Field(
        default="text/csv,application/vnd.ms-excel",
        description="Comma-separated list of accepted upload content types"
    )

    # ============================================
    # DASHBOARD
    # ============================================
    show_archived_by_default: bool = Field(
        default=False,
        description="Default for the includeArchived flag of the list endpoint"
    )

    @staticmethod
    def _split_csv(raw: str) -> list[str]:
        return [item.strip() for item in raw.split(",") if item.strip()]

    @property
    def categories_list(self) -> list[str]:
        """Get incident categories as a list."""
        return self._split_csv(self.incident_categories)

    @property
    def severities_list(self) -> list[str]:
        """Get incident severities as a list."""
        return self._split_csv(self.incident_severities)

    @property
    def allowed_mime_types_list(self) -> list[str]:
        """Get accepted upload content types as a list."""
        return self._split_csv(self.bulk_upload_allowed_mime_types)

    def length_limits(self, field_name: str) -> tuple[int, int]:
        """
        Get (min, max) length for a free-text incident field.

        Args:
            field_name: 'title' or 'description'

        Raises:
            ValueError: If the field has no configured limits
        """
        try:
            return (
                getattr(self, f"{field_name}_min_length"),
                getattr(self, f"{field_name}_max_length"),
            )
        except AttributeError:
            raise ValueError(f"No length limits configured for '{field_name}'") from None


# Global settings instance
settings = Settings()
