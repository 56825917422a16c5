"""
Configuration management for the story-playing service
"""

from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Server Configuration
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)
    debug: bool = Field(default=False)

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO"
    )
    log_file: Optional[str] = Field(default=None)

    # Database Configuration
    database_path: str = Field(
        default="data/storyplay.db",
        description="SQLite database file path for stories and playing sessions",
    )
    seed_demo_content: bool = Field(
        default=False, description="Insert a demo story on startup if none exist"
    )

    # Gameplay
    starting_level: int = Field(default=3, ge=1, le=3)
    points_per_question: int = Field(default=10, gt=0)
    good_ending_threshold: float = Field(default=80.0)
    neutral_ending_threshold: float = Field(default=40.0)

    # Private story access
    access_code_length: int = Field(default=8, ge=4, le=32)
    access_code_normalization: Literal["exact", "strip", "upper"] = Field(
        default="upper",
        description="How submitted and stored access codes are normalized before comparing",
    )

    # Staged answers older than this are rejected on acknowledgement
    pending_transition_ttl_seconds: int = Field(default=900, gt=0)


# Global settings instance
settings = Settings()
