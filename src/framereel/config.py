"""Runtime settings, read from FRAMEREEL_* environment variables or a local .env file."""
from functools import lru_cache
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DESCRIBE_INSTRUCTION = (
    "Describe this scene in vivid detail in one short sentence. "
    "The sentence will be used as the prompt to generate an 8-10 second video."
)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="FRAMEREEL_",
        env_file=".env",
        extra="ignore",
    )

    # Generative service
    api_key: str = Field(
        default="",
        validation_alias=AliasChoices("FRAMEREEL_API_KEY", "GEMINI_API_KEY", "GOOGLE_API_KEY"),
    )
    describe_model: str = "gemini-2.5-flash"
    describe_instruction: str = DESCRIBE_INSTRUCTION
    video_model: str = "veo-3.1-fast-generate-preview"
    video_resolution: str = "720p"
    video_aspect_ratio: str = "16:9"

    # Job polling
    poll_interval_s: float = Field(default=10.0, gt=0)
    max_poll_attempts: Optional[int] = Field(default=None, ge=1)  # None polls until the job finishes

    # Per-step retry (0 disables)
    describe_retries: int = Field(default=0, ge=0)
    retry_delay_s: float = Field(default=2.0, ge=0)

    # Extraction
    default_interval_s: float = Field(default=5.0, gt=0)
    jpeg_quality: int = Field(default=92, ge=1, le=100)
    subtitle_poll_interval_s: float = Field(default=0.25, gt=0)
    subtitle_timeout_s: float = Field(default=5.0, gt=0)

    # Artifact download
    fetch_timeout_s: float = Field(default=120.0, gt=0)


@lru_cache
def get_settings() -> Settings:
    return Settings()
