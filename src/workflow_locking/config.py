"""Workflow locking configuration using pydantic-settings.

This module defines the WorkflowLockingSettings class that reads
configuration from environment variables with the WORKFLOW_ prefix. The
database URL must be set via the environment; everything else has a
default.
"""

import logging
import re

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")


class WorkflowLockingSettings(BaseSettings):
    """Transition guard configuration from environment variables.

    All environment variables are prefixed with WORKFLOW_
    (e.g., WORKFLOW_DATABASE_URL).

    Required fields (must be set via environment variables):
    - database_url: PostgreSQL connection string for the record store
    """

    model_config = SettingsConfigDict(
        env_prefix="WORKFLOW_",
        case_sensitive=False,
    )

    # -------------------------------------------------------------------------
    # Database Configuration
    # -------------------------------------------------------------------------
    # PostgreSQL connection string for the record store
    database_url: str

    # Table holding workflow records
    table_name: str = "workflow_records"

    # Minimum and maximum connections in the asyncpg pool
    min_pool_size: int = 2
    max_pool_size: int = 10

    # -------------------------------------------------------------------------
    # Workflow Configuration
    # -------------------------------------------------------------------------
    # Name of the column holding each record's workflow state
    workflow_column: str = "workflow_state"

    # How long a transition may wait for its row lock, in milliseconds
    lock_timeout_ms: int = 5000

    # -------------------------------------------------------------------------
    # Logging Configuration
    # -------------------------------------------------------------------------
    log_level: str = "INFO"

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate that database URL is not empty and has valid format."""
        if not v or not v.strip():
            raise ValueError("database_url cannot be empty")
        if not v.startswith(("postgresql://", "postgres://")):
            raise ValueError(
                "database_url must start with postgresql:// or postgres://"
            )
        return v

    @field_validator("table_name", "workflow_column")
    @classmethod
    def validate_identifier(cls, v: str) -> str:
        """Validate that table and column names are plain SQL identifiers."""
        if not _IDENTIFIER.match(v):
            raise ValueError(f"{v!r} is not a valid SQL identifier")
        return v

    @field_validator("lock_timeout_ms")
    @classmethod
    def validate_lock_timeout(cls, v: int) -> int:
        """Validate that lock timeout is positive."""
        if v < 1:
            raise ValueError("lock_timeout_ms must be at least 1")
        return v

    @field_validator("min_pool_size")
    @classmethod
    def validate_min_pool_size(cls, v: int) -> int:
        if v < 1:
            raise ValueError("min_pool_size must be at least 1")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that log level is a standard logging level name."""
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log_level: {v}")
        return level

    @model_validator(mode="after")
    def validate_pool_bounds(self) -> "WorkflowLockingSettings":
        if self.max_pool_size < self.min_pool_size:
            raise ValueError("max_pool_size must be >= min_pool_size")
        return self


def get_settings() -> WorkflowLockingSettings:
    """Create and return WorkflowLockingSettings instance.

    Raises:
        pydantic.ValidationError: If required fields are missing or invalid.
    """
    return WorkflowLockingSettings()


def _redact_secret(value: str, visible_chars: int = 4) -> str:
    """Redact a secret value, showing only the first few characters."""
    if len(value) <= visible_chars:
        return "*" * len(value)
    return value[:visible_chars] + "*" * (len(value) - visible_chars)


def log_configuration(settings: WorkflowLockingSettings) -> None:
    """Log configuration values with the database URL redacted."""
    logger.info("Workflow locking configuration:")
    logger.info(f"  Database URL: {_redact_secret(settings.database_url, 13)}")
    logger.info(f"  Table Name: {settings.table_name}")
    logger.info(f"  Pool Size: {settings.min_pool_size}-{settings.max_pool_size}")
    logger.info(f"  Workflow Column: {settings.workflow_column}")
    logger.info(f"  Lock Timeout (ms): {settings.lock_timeout_ms}")
    logger.info(f"  Log Level: {settings.log_level}")
