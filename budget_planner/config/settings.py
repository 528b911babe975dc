"""
Configuration Management for AI Budget Planner

Uses pydantic-settings for type-safe configuration from environment variables.

All provider credentials and tunables live here so the rest of the
code never reads os.environ directly.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Voices offered in the planner's voice picker (display name -> ElevenLabs voice id)
DEFAULT_VOICES: dict[str, str] = {
    "John": "aOcS60CY8CoaVaZfqqb5",
    "Burt": "4YYIPFl9wE5c4L2eu2Gb",
    "Rachel": "21m00Tcm4TlvDq8ikWAM",
    "Domi": "AZnzlk1XvdvUeBnXmlld",
}


class GeminiSettings(BaseSettings):
    """Gemini LLM configuration (plan generation and transcription)."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="Gemini API key"
    )
    model_name: str = Field(
        default="gemini-2.5-flash",
        description="Gemini model used to write budget plans"
    )
    transcription_model: str = Field(
        default="gemini-2.5-flash",
        description="Gemini model used to transcribe dictated input"
    )
    max_tokens: int = Field(
        default=1024,
        ge=100,
        le=8192,
        description="Maximum tokens in response"
    )
    temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Model temperature"
    )
    max_words: int = Field(
        default=150,
        ge=30,
        le=1000,
        description="Upper bound on the length of a generated plan"
    )


class ElevenLabsSettings(BaseSettings):
    """ElevenLabs text-to-speech configuration."""

    model_config = SettingsConfigDict(
        env_prefix="ELEVENLABS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    api_key: str = Field(
        default="",
        description="ElevenLabs API key"
    )
    base_url: str = Field(
        default="https://api.elevenlabs.io/v1/text-to-speech",
        description="Text-to-speech endpoint (voice id is appended)"
    )
    model_id: str = Field(
        default="eleven_monolingual_v1",
        description="ElevenLabs synthesis model"
    )
    stability: float = Field(default=0.5, ge=0.0, le=1.0)
    similarity_boost: float = Field(default=0.5, ge=0.0, le=1.0)
    default_voice_id: str = Field(
        default=DEFAULT_VOICES["John"],
        description="Voice used when the caller does not pick one"
    )
    voices: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_VOICES),
        description="Voice catalogue shown in the planner (name -> voice id)"
    )
    timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="HTTP timeout for synthesis requests"
    )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key) and self.api_key != "YOUR_ELEVENLABS_API_KEY_HERE"


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
    plans_sheet_name: str = Field(
        default="Plans",
        description="Name of the sheet for budget plans"
    )
    profiles_sheet_name: str = Field(
        default="Profiles",
        description="Name of the sheet for user profiles"
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

    # Storage
    storage_backend: Literal["local", "sheets", "memory"] = Field(
        default="local",
        description="Where plans are persisted"
    )
    data_dir: Path = Field(
        default=Path(".data"),
        description="Directory for the local JSON store and audit log"
    )
    collaboration_enabled: bool = Field(
        default=False,
        description="Allow plans to be shared with collaborators"
    )

    # Playback
    playback_mode: Literal["streamed", "buffered"] = Field(
        default="streamed",
        description="How synthesized audio is delivered"
    )
    end_of_stream_poll_seconds: float = Field(
        default=0.1,
        gt=0,
        le=5,
        description="Interval at which a finished stream checks for pending appends"
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

    # Sub-settings are built on access so a missing key only breaks
    # the feature that needs it.

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def elevenlabs(self) -> ElevenLabsSettings:
        return ElevenLabsSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

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


def validate_all_settings() -> dict[str, object]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid} plus
    {setting_name_error: message} for the ones that failed.
    Useful for startup checks and the settings page.
    """
    results: dict[str, object] = {}
    settings = get_settings()

    checks = {
        "gemini": lambda: settings.gemini,
        "google_sheets": lambda: settings.google_sheets,
        "app": lambda: settings.app,
    }
    for name, load in checks.items():
        try:
            load()
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    # ElevenLabs loads without a key, so check it explicitly
    try:
        elevenlabs = settings.elevenlabs
        results["elevenlabs"] = elevenlabs.is_configured
        if not elevenlabs.is_configured:
            results["elevenlabs_error"] = "ELEVENLABS_API_KEY is not set"
    except Exception as e:
        results["elevenlabs"] = False
        results["elevenlabs_error"] = str(e)

    return results
