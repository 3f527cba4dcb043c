"""
Configuration management for the Image Transcriber.

Uses pydantic-settings to load configuration from environment variables
and .env files. Components receive a ``Settings`` instance explicitly;
``get_settings()`` is only meant for entry points.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_IMAGE_FOLDER_NAME = "Images"
MAX_CONCURRENT_JOBS = 5

DEFAULT_SYSTEM_PROMPT = (
    "You are an expert at transcribing handwritten notes and typed text from images. "
    "Convert the image content to clean markdown format, preserving the structure and "
    "organization of the original notes."
)
DEFAULT_USER_PROMPT = (
    "Please transcribe all text visible in this image into markdown format. "
    "Preserve the structure, headings, lists, and any other formatting from the original text. "
    "If you detect any diagrams, replace each one with a well-structured explanation of the "
    "content it conveys, placed in its appropriate order within the rest of the markdown. "
    "Do not mention that the transcript is in markdown format."
)


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Vault Configuration
    vault_root: Path = Path("vault")
    state_file: Optional[Path] = None

    # Destination Configuration
    image_folder_name: str = DEFAULT_IMAGE_FOLDER_NAME
    image_destination: Literal["subfolder", "fixed"] = "subfolder"
    image_fixed_folder: str = ""
    note_destination: Literal["alongside", "fixed"] = "alongside"
    note_fixed_folder: str = ""

    # Queue Configuration
    max_concurrent_jobs: int = 2
    ready_delay: float = 2.0  # seconds
    shutdown_timeout: float = 30.0  # seconds

    # Transcription Provider Configuration
    provider: Literal["openai", "anthropic", "google", "mistral", "openai-compatible"] = "openai"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o"
    openai_base_url: str = "https://api.openai.com"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-3-haiku-20240307"
    google_api_key: str = ""
    google_model: str = "gemini-1.5-flash"
    mistral_api_key: str = ""
    mistral_model: str = "pixtral-12b-2409"
    openai_compatible_endpoint: str = ""
    openai_compatible_api_key: str = ""
    openai_compatible_model: str = ""
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    user_prompt: str = DEFAULT_USER_PROMPT
    max_tokens: int = 4000
    request_timeout: float = 120.0

    # Note Configuration
    use_first_line_as_title: bool = True

    # Notification Configuration
    verbose_notifications: bool = False
    compact_notifications: bool = False

    # Image Configuration
    compression_max_size_mb: float = 1.0
    compression_max_dimension: int = 1920
    compression_quality: int = 85
    heic_quality: int = 90

    # API Configuration
    api_port: int = 8000
    log_level: str = "INFO"
    api_title: str = "Image Transcriber API"
    api_version: str = "1.0.0"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("max_concurrent_jobs")
    @classmethod
    def clamp_concurrency(cls, v: int) -> int:
        """Keep the concurrency limit between 1 and MAX_CONCURRENT_JOBS."""
        return max(1, min(MAX_CONCURRENT_JOBS, v))

    @field_validator("image_folder_name")
    @classmethod
    def default_folder_name(cls, v: str) -> str:
        """Blank folder names fall back to the default."""
        return v.strip().strip("/") or DEFAULT_IMAGE_FOLDER_NAME

    @field_validator("image_folder_name", "image_fixed_folder", "note_fixed_folder")
    @classmethod
    def folder_inside_vault(cls, v: str) -> str:
        """Destination folders are vault-relative and may not climb out of it."""
        if ".." in v.replace("\\", "/").split("/"):
            raise ValueError("folder must stay inside the vault")
        return v

    @field_validator("compression_quality", "heic_quality")
    @classmethod
    def valid_quality(cls, v: int) -> int:
        if not 1 <= v <= 100:
            raise ValueError("quality must be between 1 and 100")
        return v

    @model_validator(mode="after")
    def fixed_policies_need_folders(self) -> "Settings":
        """A fixed destination without a folder falls back to the default policy."""
        if self.image_destination == "fixed" and not self.image_fixed_folder.strip():
            self.image_destination = "subfolder"
        if self.note_destination == "fixed" and not self.note_fixed_folder.strip():
            self.note_destination = "alongside"
        return self

    def get_state_file(self) -> Path:
        """Resolve the persisted state blob location."""
        if self.state_file is not None:
            return Path(self.state_file).expanduser()
        return Path(self.vault_root).expanduser() / ".image-transcriber" / "state.json"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
