"""
Configuration Management for Voice Expense

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Every external collaborator (Gemini, Google Sheets, the microphone,
the transcription API) is configured in one place and validated at startup.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GeminiSettings(BaseSettings):
    """Gemini configuration for both AI stages."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="Gemini API key"
    )
    speech_model_name: str = Field(
        default="gemini-1.5-flash",
        description="Model used for speech-to-text"
    )
    extraction_model_name: str = Field(
        default="gemini-1.5-flash",
        description="Model used for structured expense extraction"
    )
    max_tokens: int = Field(
        default=1024,
        ge=100,
        le=8192,
        description="Maximum tokens in response"
    )
    temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Model temperature (lower = more deterministic)"
    )
    transcription_language: str = Field(
        default="pl",
        min_length=2,
        max_length=5,
        description="ISO 639-1 language hint for transcription"
    )


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets task and audit storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
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
    tasks_sheet_name: str = Field(
        default="TranscriptionTasks",
        description="Name of the sheet for transcription tasks"
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


class CaptureSettings(BaseSettings):
    """Microphone capture configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CAPTURE_",
        extra="ignore"
    )

    min_duration_seconds: float = Field(
        default=0.5,
        ge=0.0,
        description="Earliest point at which a recording may be stopped"
    )
    max_duration_seconds: float = Field(
        default=60.0,
        gt=0.0,
        le=600.0,
        description="Recording is stopped automatically at this length"
    )
    tick_interval_seconds: float = Field(
        default=1.0,
        gt=0.0,
        description="Resolution of the duration counter"
    )
    sample_rate_hz: int = Field(
        default=16000,
        ge=8000,
        le=48000,
    )
    channels: int = Field(
        default=1,
        ge=1,
        le=2,
    )
    device_name: Optional[str] = Field(
        default=None,
        description="Preferred input device (substring match)"
    )


class ClientSettings(BaseSettings):
    """Settings for the upload client and the task poller."""

    model_config = SettingsConfigDict(
        env_prefix="CLIENT_",
        extra="ignore"
    )

    api_base_url: str = Field(
        default="http://localhost:8000",
        description="Base URL of the transcription API"
    )
    auth_token: str = Field(
        default="",
        description="Bearer token sent with every request"
    )
    polling_interval_seconds: float = Field(
        default=1.0,
        gt=0.0,
    )
    max_polling_attempts: int = Field(
        default=60,
        ge=1,
        le=600,
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        gt=0.0,
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

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    # Upload limits
    max_upload_size_mb: int = Field(
        default=25,
        ge=1,
        le=100,
        description="Maximum audio upload size in MB"
    )
    min_recording_seconds: int = Field(
        default=1,
        ge=0,
        description="Recordings shorter than this are rejected before upload"
    )
    supported_audio_formats: str = Field(
        default="flac,mp3,mpeg,mp4,m4a,ogg,wav,webm",
        description="Comma-separated list of supported audio subtypes"
    )

    # Backends
    storage_backend: str = Field(
        default="memory",
        pattern="^(memory|google_sheets)$",
        description="Where transcription tasks are persisted"
    )
    auth_directory_path: str = Field(
        default="auth_directory.json",
        description="JSON file with API tokens and group memberships"
    )

    @property
    def supported_formats_list(self) -> list[str]:
        """Get supported formats as a list of MIME types."""
        return [
            f"audio/{fmt.strip().lower()}"
            for fmt in self.supported_audio_formats.split(",")
        ]

    @property
    def max_upload_size_bytes(self) -> int:
        """Get max upload size in bytes."""
        return self.max_upload_size_mb * 1024 * 1024


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

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def capture(self) -> CaptureSettings:
        return CaptureSettings()

    @property
    def client(self) -> ClientSettings:
        return ClientSettings()

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

    Returns a dict of {setting_name: is_valid}, with an
    additional "<name>_error" entry for every failure.
    """
    results = {}

    settings = get_settings()

    for name in ("gemini", "google_sheets", "capture", "client", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
