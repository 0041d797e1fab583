"""Configuration management using pydantic-settings."""

from pathlib import Path
from typing import Annotated, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Every field can also be overridden from the command line.
    """

    # Vertex AI credentials (required at run time)
    project_id: str = ""
    location: str = ""

    # Generation
    model: str = "gemini-2.5-flash-lite"
    reply_language: str = "English"

    # Conversation
    turns: int = Field(default=20, ge=1)
    chas: int = 3
    personas: Annotated[List[str], NoDecode] = Field(default_factory=list)
    tick_seconds: float = Field(default=1.0, gt=0)
    window_size: int = Field(default=10, ge=1)
    subscriber_buffer: int = Field(default=16, ge=1)

    # Topics
    rss_url: str = ""
    rss_limit: int = 1
    rss_timeout_seconds: float = 10.0

    # Rendering
    renderers: Annotated[List[str], NoDecode] = Field(default_factory=lambda: ["console", "markdown"])
    output_dir: Path = Path("pages/content/posts")
    typing_delay: float = 0.05
    timezone: str = "Asia/Tokyo"

    # Storage
    data_dir: Path = Path("data")
    personas_path: Optional[Path] = None

    # Logging
    log_level: str = "INFO"
    log_dir: Path = Path("logs")
    bus_log: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("personas", "renderers", mode="before")
    @classmethod
    def parse_csv_list(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value

    def missing_credentials(self) -> List[str]:
        missing = []
        if not self.project_id.strip():
            missing.append("PROJECT_ID")
        if not self.location.strip():
            missing.append("LOCATION")
        return missing
