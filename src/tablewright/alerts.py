"""Alerts raised when the table cannot be altered or created.

This module provides:
- FailedToAddColumns, FailedToCreateTable: alert values
- Monitoring: protocol of the alert sink
- LoggingMonitoring: alert sink backed by structlog and OpenTelemetry
"""

from __future__ import annotations

from typing import Annotated, Literal, Protocol, Union, runtime_checkable

from opentelemetry import trace
from pydantic import BaseModel, ConfigDict, Field

from tablewright.observability import get_logger


class FailedToAddColumns(BaseModel):
    """Adding columns to the table failed.

    Attributes:
        table: Fully qualified table name.
        columns: Names of the columns that could not be added.
        cause: Description of the underlying failure.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["failed_to_add_columns"] = "failed_to_add_columns"
    table: str
    columns: tuple[str, ...]
    cause: str

    @property
    def message(self) -> str:
        return f"Failed to add columns [{', '.join(self.columns)}] to {self.table}: {self.cause}"


class FailedToCreateTable(BaseModel):
    """Creating the table failed.

    Attributes:
        table: Fully qualified table name.
        cause: Description of the underlying failure.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["failed_to_create_table"] = "failed_to_create_table"
    table: str
    cause: str

    @property
    def message(self) -> str:
        return f"Failed to create table {self.table}: {self.cause}"


Alert = Annotated[
    Union[FailedToAddColumns, FailedToCreateTable],
    Field(discriminator="kind"),
]


@runtime_checkable
class Monitoring(Protocol):
    """Fire-and-forget sink for alerts."""

    def alert(self, alert: Alert) -> None: ...


class LoggingMonitoring:
    """Alert sink that logs alerts and records them on the current span."""

    def __init__(self) -> None:
        self._logger = get_logger()

    def alert(self, alert: Alert) -> None:
        self._logger.error("alert_raised", alert=alert.kind, message=alert.message)
        trace.get_current_span().add_event(
            "alert",
            attributes={"alert.kind": alert.kind, "alert.message": alert.message},
        )
