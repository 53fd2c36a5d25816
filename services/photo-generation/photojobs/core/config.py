import os
from pathlib import Path
from typing import Literal, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "Photo Generation Jobs"
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    # Job controller
    POLLING_INTERVAL: float = 1.5  # seconds
    GENERATION_TIMEOUT: float = 120.0  # seconds
    MAX_POLL_FAILURES: int = 3  # consecutive failed status checks before giving up
    POLL_FAILURE_BACKOFF: float = 0.5  # seconds, doubled per consecutive failure
    REQUEST_TIMEOUT: float = 60.0  # seconds

    # Edit endpoint the controller talks to (served by photojobs.main)
    EDIT_API_BASE_URL: str = "http://localhost:8000"
    EDIT_API_PATH: str = "/api/fal/nano-banana/edit"

    # fal.ai queue
    FAL_KEY: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("FAL_KEY", "FAL_API_KEY", "FAL_TOKEN")
    )
    FAL_QUEUE_URL: str = "https://queue.fal.run"
    FAL_NANO_BANANA_MODEL_ID: str = "fal-ai/gemini-25-flash-image"
    FAL_NANO_BANANA_SUBPATH: str = "edit"

    # Generation history
    HISTORY_LIMIT: int = 200

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def normalise_log_level(cls, value):
        return value.upper() if isinstance(value, str) else value

    @property
    def default_model(self) -> str:
        return f"{self.FAL_NANO_BANANA_MODEL_ID}/{self.FAL_NANO_BANANA_SUBPATH}"


class LocalSettings(Settings):
    ENV: str = "dev"
    HISTORY_PATH: Path = Field(default=Path("local_storage/photo_generations.json"))


class ProductionSettings(Settings):
    ENV: str = "production"
    FAL_KEY: str = Field(..., validation_alias=AliasChoices("FAL_KEY", "FAL_API_KEY", "FAL_TOKEN"))
    HISTORY_PATH: Path = Field(..., validation_alias="HISTORY_PATH")


# Factory to choose the right config
def get_settings() -> Settings:
    env = os.getenv("ENV", "local")
    if env == "production":
        return ProductionSettings()  # type: ignore
    return LocalSettings()


settings = get_settings()
