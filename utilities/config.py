"""
Configuration management using environment variables.
Handles all watcher settings with proper validation and defaults.
"""

from typing import Optional
from pydantic import Field, validator
from pydantic_settings import BaseSettings
from pathlib import Path


class WatcherSettings(BaseSettings):
    """
    Configuration class for watcher settings.
    Uses pydantic BaseSettings for environment variable management.
    """

    # MongoDB Configuration (directory + credentials)
    mongodb_url: str = Field(default="mongodb://localhost:27017")
    mongodb_database: str = Field(default="halo_watcher")
    cookie_cache_ttl_seconds: int = Field(default=60)

    # Halo Configuration
    halo_gateway_url: str = Field(default="https://gateway.halo.gcu.edu")
    halo_validate_url: str = Field(default="https://halo.gcu.edu/api/token-validate/")
    request_timeout: int = Field(default=30)
    rate_limit_per_second: float = Field(default=5.0)
    inbox_page_size: int = Field(default=10)

    # Snapshot storage
    snapshot_dir: str = Field(default="cache")

    # Polling Configuration
    poll_interval_seconds: int = Field(default=20)
    max_overlapping_ticks: int = Field(default=3)
    announcement_recency_hours: int = Field(default=48)
    timezone: str = Field(default="UTC")

    # Watchers
    enable_announcements: bool = Field(default=True)
    enable_grades: bool = Field(default=True)
    enable_inbox_messages: bool = Field(default=True)

    # Health API
    health_api_enabled: bool = Field(default=True)
    health_api_host: str = Field(default="0.0.0.0")
    health_api_port: int = Field(default=8000)
    heartbeat_stale_seconds: int = Field(default=120)

    # Logging Configuration
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")
    log_file: Optional[str] = Field(default="logs/watcher.log")

    # Development/Testing
    debug: bool = Field(default=False)

    @validator('request_timeout')
    def validate_timeout(cls, v):
        """Ensure timeout is reasonable."""
        if v < 5 or v > 300:
            raise ValueError('request_timeout must be between 5 and 300 seconds')
        return v

    @validator('rate_limit_per_second')
    def validate_rate_limit(cls, v):
        """Ensure rate limit is reasonable."""
        if v < 0.1 or v > 50:
            raise ValueError('rate_limit_per_second must be between 0.1 and 50')
        return v

    @validator('poll_interval_seconds')
    def validate_poll_interval(cls, v):
        """Ensure the polling period is reasonable."""
        if v < 1 or v > 3600:
            raise ValueError('poll_interval_seconds must be between 1 and 3600')
        return v

    @validator('max_overlapping_ticks')
    def validate_overlapping_ticks(cls, v):
        if v < 1 or v > 10:
            raise ValueError('max_overlapping_ticks must be between 1 and 10')
        return v

    @validator('cookie_cache_ttl_seconds')
    def validate_cookie_cache_ttl(cls, v):
        if v < 0:
            raise ValueError('cookie_cache_ttl_seconds must not be negative')
        return v

    @validator('inbox_page_size')
    def validate_inbox_page_size(cls, v):
        if v < 1 or v > 100:
            raise ValueError('inbox_page_size must be between 1 and 100')
        return v

    @validator('log_level')
    def validate_log_level(cls, v):
        """Ensure log level is valid."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'log_level must be one of: {valid_levels}')
        return v.upper()

    @validator('log_format')
    def validate_log_format(cls, v):
        """Ensure log format is valid."""
        valid_formats = ['json', 'console']
        if v.lower() not in valid_formats:
            raise ValueError(f'log_format must be one of: {valid_formats}')
        return v.lower()

    class Config:
        """Pydantic configuration."""
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"  # Ignore extra fields from .env

    def get_log_file_path(self) -> Optional[Path]:
        """Get log file path as Path object."""
        if self.log_file:
            return Path(self.log_file)
        return None

    def get_snapshot_dir_path(self) -> Path:
        """Get snapshot directory as Path object."""
        return Path(self.snapshot_dir)

    def get_headers(self) -> dict:
        """Get default headers for Halo requests."""
        return {
            "accept": "*/*",
            "content-type": "application/json",
            "user-agent": "HaloWatcher/1.0",
        }


# Global configuration instance
config = WatcherSettings()
