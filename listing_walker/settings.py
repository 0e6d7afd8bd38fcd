"""Process-level settings, read from the environment and an optional .env file."""
from pathlib import Path
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict

from .config import BlockConfig, RetryConfig


class Settings(BaseSettings):
    """Walker settings."""

    model_config = SettingsConfigDict(
        env_prefix="LISTING_WALKER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Persistence
    state_dir: Path = Path("walker_state")
    store_backend: str = "json"  # json | sqlite

    # Result sink
    result_endpoint: Optional[str] = None
    api_key: Optional[str] = None
    output_dir: Path = Path("walker_results")
    request_timeout: float = 10.0

    # Browser
    headless: bool = False

    # Logging
    log_level: str = "INFO"

    # Backoff
    block_min_minutes: float = 60.0
    block_max_minutes: float = 120.0

    # Retries
    max_retries: int = 3
    retry_base_delay: float = 1.0

    @property
    def block_config(self) -> BlockConfig:
        return BlockConfig(min_minutes=self.block_min_minutes, max_minutes=self.block_max_minutes)

    @property
    def retry_config(self) -> RetryConfig:
        return RetryConfig(max_retries=self.max_retries, base_delay=self.retry_base_delay)
