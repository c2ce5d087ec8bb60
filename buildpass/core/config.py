"""Application configuration with environment variable validation."""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve .env relative to the project root (3 levels up from this file)
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _PROJECT_ROOT / ".env"

# Bundled reference dictionaries (catalog, regional rules, legal framework)
_DEFAULT_REFERENCE_DIR = Path(__file__).resolve().parent.parent / "data"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Supabase
    supabase_url: str = Field(default="", validation_alias="SUPABASE_URL")
    supabase_key: str = Field(default="", validation_alias="SUPABASE_KEY")

    # Reference data
    reference_data_dir: Path = Field(
        default=_DEFAULT_REFERENCE_DIR,
        validation_alias="REFERENCE_DATA_DIR",
    )

    # API settings
    api_admin_key: str = Field(default="", validation_alias="API_ADMIN_KEY")
    allowed_origins: list[str] = Field(
        default=["http://localhost:3000"],
        validation_alias="ALLOWED_ORIGINS",
    )
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    # Rate limiting (slowapi limit string)
    check_rate_limit: str = Field(default="60/minute", validation_alias="CHECK_RATE_LIMIT")

    # Database overlay cache for the interactive check
    overlay_cache_ttl: int = Field(default=60, validation_alias="OVERLAY_CACHE_TTL")
    overlay_cache_size: int = Field(default=512, validation_alias="OVERLAY_CACHE_SIZE")

    @property
    def cors_origins(self) -> list[str]:
        """Parse ALLOWED_ORIGINS from comma-separated string or return list."""
        if isinstance(self.allowed_origins, str):
            return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]
        return self.allowed_origins


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()  # type: ignore[call-arg]


def validate_settings() -> None:
    """Validate that all required settings are present."""
    settings = get_settings()
    errors = []

    if not settings.supabase_url:
        errors.append("SUPABASE_URL is required")
    if not settings.supabase_key:
        errors.append("SUPABASE_KEY is required")
    if not settings.reference_data_dir.is_dir():
        errors.append(f"REFERENCE_DATA_DIR does not exist: {settings.reference_data_dir}")

    if errors:
        raise ValueError(f"Configuration errors: {'; '.join(errors)}")
