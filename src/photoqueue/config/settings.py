"""photoqueue configuration settings using pydantic-settings."""

import logging
from functools import cached_property
from pathlib import Path
from typing import Any

import yaml
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Configuration settings for the upload agent.

    Settings are loaded from environment variables with the PHOTOQUEUE_ prefix.
    For example, PHOTOQUEUE_MAX_RETRIES=5 sets max_retries to 5.
    """

    model_config = SettingsConfigDict(
        env_prefix="PHOTOQUEUE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Queue settings
    max_retries: int = 3  # delivery attempts before an artifact is dropped
    sync_interval_ms: int = 5000  # sync loop timer cadence

    # Upload settings
    server_url: str = "http://localhost:8000"
    upload_timeout: float = 30.0  # seconds before an attempt counts as failed
    connectivity_poll_interval: float = 2.0  # seconds between health probes

    # File paths
    data_dir: Path = Path("~/.local/share/photoqueue")
    attributes_file: Path = Path("~/.config/photoqueue/attributes.yaml")

    # Logging
    log_level: str = "INFO"
    log_file: Path | None = None
    agent_id: str | None = None  # stamped on every log record, e.g. device name

    @field_validator("max_retries")
    @classmethod
    def validate_max_retries(cls, v: int) -> int:
        """Ensure at least one delivery attempt is allowed."""
        if v < 1:
            raise ValueError("max_retries must be at least 1")
        return v

    @field_validator("sync_interval_ms")
    @classmethod
    def validate_sync_interval(cls, v: int) -> int:
        """Ensure the sync cadence is positive."""
        if v < 1:
            raise ValueError("sync_interval_ms must be at least 1 millisecond")
        return v

    @field_validator("upload_timeout", "connectivity_poll_interval")
    @classmethod
    def validate_positive_seconds(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be greater than 0 seconds")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v.upper()

    @model_validator(mode="after")
    def validate_poll_within_tick(self) -> "Settings":
        """A reconnect must be noticed within one sync tick."""
        if self.connectivity_poll_interval > self.sync_interval:
            raise ValueError(
                "connectivity_poll_interval must not exceed the sync interval "
                f"({self.sync_interval}s)"
            )
        return self

    @property
    def sync_interval(self) -> float:
        """Sync loop cadence in seconds."""
        return self.sync_interval_ms / 1000.0

    @cached_property
    def data_path(self) -> Path:
        """Return expanded data directory path."""
        return self.data_dir.expanduser()

    @cached_property
    def attributes_path(self) -> Path:
        """Return expanded default attributes file path."""
        return self.attributes_file.expanduser()

    @property
    def queue_db_path(self) -> Path:
        """SQLite file holding the persisted queue."""
        return self.data_path / "queue.db"

    def load_default_attributes(self) -> dict[str, Any]:
        """Load default owner attributes from the YAML attributes file.

        These are merged under the attributes given to each CLI enqueue,
        typically the originating user and location:

            user_id: courier-17
            store_id: downtown

        Returns an empty dict if the file doesn't exist or can't be read.
        """
        if not self.attributes_path.exists():
            return {}

        try:
            with open(self.attributes_path) as f:
                attributes = yaml.safe_load(f) or {}
        except (yaml.YAMLError, OSError) as e:
            logger.warning("Failed to load attributes from %s: %s", self.attributes_path, e)
            return {}

        if not isinstance(attributes, dict):
            logger.warning("Ignoring attributes file %s: expected a mapping", self.attributes_path)
            return {}
        return attributes
