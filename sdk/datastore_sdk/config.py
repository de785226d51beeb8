"""
Configuration for the Datastore SDK.

Uses pydantic-settings for environment variable loading. Every setting
can come from a ``DATASTORE_``-prefixed variable; nested retry settings
use ``__`` (for example ``DATASTORE_RETRY__MAX_ATTEMPTS=5``).

Only ``dataset`` and ``namespace`` are read by the SDK core. Host,
credentials and retry parameters are passed through untouched to the
RemoteStore implementation.

Invariants:
    - Options are frozen; derive variants with model_copy(update=...)
    - Credentials are never logged
"""

from __future__ import annotations

import logging

import json_log_formatter
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_HOST = "https://www.googleapis.com"


class RetryParams(BaseModel):
    """Retry policy handed to the RemoteStore; the SDK core never retries."""

    model_config = {"frozen": True}

    max_attempts: int = Field(default=3, ge=1)
    initial_delay_ms: int = Field(default=250, ge=0)
    max_delay_ms: int = Field(default=32_000, ge=0)
    delay_multiplier: float = Field(default=2.0, ge=1.0)


class DatastoreOptions(BaseSettings):
    """Datastore client configuration."""

    model_config = SettingsConfigDict(
        env_prefix="DATASTORE_",
        env_nested_delimiter="__",
        frozen=True,
    )

    dataset: str = Field(description="Dataset all keys default to")
    namespace: str | None = Field(default=None)
    host: str = Field(default=DEFAULT_HOST)
    credentials_file: str | None = Field(default=None, repr=False)
    retry: RetryParams = Field(default_factory=RetryParams)

    log_level: str = Field(default="INFO")
    log_format: str = Field(default="text", description="'text' or 'json'")

    @field_validator("dataset")
    @classmethod
    def _dataset_not_empty(cls, value: str) -> str:
        if not value:
            raise ValueError("dataset cannot be empty")
        return value

    @field_validator("log_format")
    @classmethod
    def _known_log_format(cls, value: str) -> str:
        if value not in ("text", "json"):
            raise ValueError(f"log_format must be 'text' or 'json', got {value!r}")
        return value


def setup_logging(options: DatastoreOptions) -> None:
    """Configure logging based on options.

    Args:
        options: Client options
    """
    level = getattr(logging, options.log_level.upper(), logging.INFO)

    if options.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]
