"""Check-in agent configuration settings using pydantic-settings."""

from functools import cached_property
from pathlib import Path
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Configuration settings for the check-in agent.

    Settings are loaded from environment variables with the CHECKIN_ prefix.
    For example, CHECKIN_DEDUP_WINDOW=5 sets dedup_window to 5 seconds.
    """

    model_config = SettingsConfigDict(
        env_prefix="CHECKIN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Collector settings
    collector_url: str = "http://localhost:5678/webhook/scan-qr"
    delivery_timeout: float = 10.0  # seconds before a delivery counts as failed

    # Scan cadence
    decode_interval: float = 0.5  # seconds between decode attempts
    dedup_window: float = 3.0  # identical consecutive payloads ignored within this span
    result_display_delay: float = 3.0  # seconds a result is shown before rescanning

    # Connectivity
    probe_interval: float = 15.0  # seconds between collector reachability probes
    assume_online: bool = True

    # Camera
    camera_index: int = 0

    # Storage
    store_backend: Literal["sqlite", "file"] = "sqlite"
    data_dir: Path = Path("~/.local/share/checkin")

    # Logging
    station_id: str | None = None
    log_level: str = "INFO"
    log_file: Path | None = None

    @field_validator("collector_url")
    @classmethod
    def validate_collector_url(cls, v: str) -> str:
        """Ensure the collector URL is an http(s) URL."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("collector_url must start with http:// or https://")
        return v

    @field_validator("delivery_timeout", "decode_interval", "probe_interval")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        """Ensure intervals and timeouts are positive."""
        if v <= 0:
            raise ValueError("must be greater than 0")
        return v

    @field_validator("dedup_window", "result_display_delay")
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        """Ensure windows and delays are not negative."""
        if v < 0:
            raise ValueError("must not be negative")
        return v

    @field_validator("camera_index")
    @classmethod
    def validate_camera_index(cls, v: int) -> int:
        """Ensure the camera index is a valid device number."""
        if v < 0:
            raise ValueError("camera_index must be 0 or greater")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v.upper()

    @cached_property
    def data_path(self) -> Path:
        """Return expanded data directory path."""
        return self.data_dir.expanduser()

    @cached_property
    def store_path(self) -> Path:
        """Return the path of the durable queue store for the configured backend."""
        if self.store_backend == "file":
            return self.data_path / "store"
        return self.data_path / "queue.db"
