"""Runtime configuration loaded from environment variables (prefix ``REDPEN_``)."""

from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="REDPEN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Document store
    store_root: str = "."

    # Visual diff markup (hex RRGGBB)
    deletion_color: str = "D93025"
    insertion_color: str = "1E8E3E"
    bookmark_prefix: str = "_Redpen"

    # Structural parser
    extra_section_keywords: List[str] = []

    # Logging
    log_level: str = "INFO"
    json_logs: bool = False

    @property
    def deletion_bookmark_prefix(self) -> str:
        return f"{self.bookmark_prefix}Del_"

    @property
    def insertion_bookmark_prefix(self) -> str:
        return f"{self.bookmark_prefix}Ins_"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
