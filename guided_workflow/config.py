from typing import Literal
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # Database Configuration
    # Only required when one of the sources below is "postgres"
    DATABASE_URL: str | None = None

    # Storage backends
    WORKFLOW_SOURCE: Literal["static", "postgres"] = "static"
    SESSION_STORE: Literal["memory", "postgres"] = "memory"

    # Engine behavior
    # Delay between materialized rows; presentation only, never used for ordering
    PACING_DELAY_SECONDS: float = 0.0
    # Sessions start with multi-workflow interactions enabled
    INTERACTION_MODE: bool = False

    LOG_LEVEL: str = "INFO"

    # Loads from a .env file in the root directory
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

# Singleton instance
settings = Settings()
