"""Pydantic configuration models for tablewright.

This module provides:
- TooManyColumnsConfig: Cool-down after the column limit is hit
- RetryConfig: Retry policy configuration with exponential backoff
- TablewrightConfig: Top-level loader configuration
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from tablewright.atomic import ATOMIC_FIELDS, LOAD_TSTAMP_COLUMN
from tablewright.fields import Field as Column
from tablewright.fields import TableIdentifier

__all__ = [
    "RetryConfig",
    "TableIdentifier",
    "TablewrightConfig",
    "TooManyColumnsConfig",
]


class TooManyColumnsConfig(BaseModel):
    """Cool-down applied after the table hits its column limit.

    Attributes:
        delay_seconds: How long column addition stays disabled (default 300s).

    Example:
        >>> TooManyColumnsConfig(delay_seconds=600).delay_seconds
        600.0
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    delay_seconds: float = Field(
        default=300.0,
        gt=0.0,
        description="Seconds before column addition is re-enabled",
    )


class RetryConfig(BaseModel):
    """Retry policy for table store operations.

    Implements exponential backoff with jitter for transient failures.
    Retries never stop; sustained failure is reported through the health
    sink and alerts instead.

    Attributes:
        initial_wait_seconds: Initial backoff wait (default 1.0).
        backoff_multiplier: Growth factor between waits (default 2.0).
        max_wait_seconds: Maximum backoff cap (default 60.0).
        jitter_seconds: Random jitter range (default 1.0).
        too_many_columns: Cool-down after the column limit is hit.

    Example:
        >>> config = RetryConfig(initial_wait_seconds=0.5)
        >>> config.initial_wait_seconds
        0.5
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    initial_wait_seconds: float = Field(
        default=1.0,
        ge=0.0,
        le=60.0,
        description="Initial backoff wait time in seconds",
    )
    backoff_multiplier: float = Field(
        default=2.0,
        ge=1.0,
        le=10.0,
        description="Exponential growth factor between waits",
    )
    max_wait_seconds: float = Field(
        default=60.0,
        ge=0.0,
        le=3600.0,
        description="Maximum backoff wait time in seconds",
    )
    jitter_seconds: float = Field(
        default=1.0,
        ge=0.0,
        le=10.0,
        description="Random jitter range in seconds",
    )
    too_many_columns: TooManyColumnsConfig = Field(
        default_factory=TooManyColumnsConfig,
        description="Cool-down after the column limit is hit",
    )

    @field_validator("max_wait_seconds")
    @classmethod
    def max_wait_must_exceed_initial(cls, v: float, info: object) -> float:
        """Validate that max_wait_seconds >= initial_wait_seconds."""
        data = getattr(info, "data", {})
        initial = data.get("initial_wait_seconds", 1.0)
        if v < initial:
            msg = f"max_wait_seconds ({v}) must be >= initial_wait_seconds ({initial})"
            raise ValueError(msg)
        return v


class TablewrightConfig(BaseModel):
    """Configuration consumed by the schema-evolution coordinator.

    Attributes:
        table: Table whose schema is evolved.
        retries: Retry policy.
        atomic_fields: Baseline columns of a newly created table.
        partition_column: Timestamp column the table is partitioned on by day.
        max_concurrency: Batches of columns processed concurrently.

    Example:
        >>> config = TablewrightConfig(
        ...     table=TableIdentifier(project="acme", dataset="atomic", name="events"),
        ... )
        >>> config.partition_column
        'load_tstamp'
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    table: TableIdentifier
    retries: RetryConfig = Field(
        default_factory=RetryConfig,
        description="Retry policy configuration",
    )
    atomic_fields: tuple[Column, ...] = Field(
        default=ATOMIC_FIELDS,
        min_length=1,
        description="Baseline columns for table creation",
    )
    partition_column: str = Field(
        default=LOAD_TSTAMP_COLUMN,
        min_length=1,
        description="Timestamp column used for daily partitioning",
    )
    max_concurrency: int = Field(
        default=4,
        ge=1,
        le=64,
        description="Column batches processed concurrently",
    )

    @field_validator("table", mode="before")
    @classmethod
    def parse_table_string(cls, v: Any) -> Any:
        """Accept ``project.dataset.table`` strings for the table."""
        if isinstance(v, str):
            return TableIdentifier.from_string(v)
        return v

    @classmethod
    def from_yaml(cls, path: str | Path) -> TablewrightConfig:
        """Load and validate configuration from a YAML file.

        Args:
            path: Path to the YAML file.

        Returns:
            Validated TablewrightConfig instance.

        Raises:
            FileNotFoundError: If file doesn't exist.
            yaml.YAMLError: If YAML syntax is invalid.
            ValidationError: If schema validation fails.

        Example:
            >>> config = TablewrightConfig.from_yaml("tablewright.yaml")
            >>> str(config.table)
            'acme.atomic.events'
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {path}")

        with path.open("r") as f:
            data: dict[str, Any] = yaml.safe_load(f) or {}

        return cls.model_validate(data)
