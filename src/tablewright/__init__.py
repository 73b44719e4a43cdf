"""tablewright: schema evolution for a shared analytical events table.

This package keeps the schema of a remote table in step with the event
shapes observed by a loader, while other loaders alter the same table:
- Append-only column merging against the live schema
- Classification of store rejections into recovery strategies
- A circuit breaker that pauses column additions at the column limit
- Unbounded retries with backoff, health signalling and alerts
- Structured logging via structlog and OpenTelemetry span tracing

Example:
    >>> from pyiceberg.catalog import load_catalog
    >>> from tablewright import TablewrightConfig, create_coordinator
    >>>
    >>> config = TablewrightConfig.from_yaml("tablewright.yaml")
    >>> async with create_coordinator(config, load_catalog("default")) as coordinator:
    ...     await coordinator.create_table()
    ...     await coordinator.add_columns(fields)
"""

from __future__ import annotations

__version__ = "0.1.0"

__all__ = [
    # Factory and logging setup
    "create_coordinator",
    "configure_logging",
    # Coordinator and collaborators
    "SchemaEvolutionCoordinator",
    "SchemaMutator",
    "IcebergTableStore",
    "TableStore",
    "AppHealth",
    "LoggingMonitoring",
    # Configuration models
    "TablewrightConfig",
    "RetryConfig",
    "TooManyColumnsConfig",
    # Data models
    "Field",
    "FieldList",
    "PrimitiveKind",
    "PrimitiveType",
    "RepeatedType",
    "RecordType",
    "OpaqueType",
    "TableIdentifier",
    "TableCreationSpec",
    "merge_in_columns",
    "FailedToAddColumns",
    "FailedToCreateTable",
    # Exceptions
    "TablewrightError",
    "RemoteUnavailableError",
    "RemoteSchemaError",
    "SchemaConversionError",
    "ErrorKind",
    "classify",
]

_MODULES = {
    "create_coordinator": "tablewright.factory",
    "configure_logging": "tablewright.observability",
    "SchemaEvolutionCoordinator": "tablewright.coordinator",
    "SchemaMutator": "tablewright.mutator",
    "IcebergTableStore": "tablewright.store",
    "TableStore": "tablewright.store",
    "AppHealth": "tablewright.health",
    "LoggingMonitoring": "tablewright.alerts",
    "FailedToAddColumns": "tablewright.alerts",
    "FailedToCreateTable": "tablewright.alerts",
    "TablewrightConfig": "tablewright.config",
    "RetryConfig": "tablewright.config",
    "TooManyColumnsConfig": "tablewright.config",
    "Field": "tablewright.fields",
    "FieldList": "tablewright.fields",
    "PrimitiveKind": "tablewright.fields",
    "PrimitiveType": "tablewright.fields",
    "RepeatedType": "tablewright.fields",
    "RecordType": "tablewright.fields",
    "OpaqueType": "tablewright.fields",
    "TableIdentifier": "tablewright.fields",
    "TableCreationSpec": "tablewright.fields",
    "merge_in_columns": "tablewright.fields",
    "TablewrightError": "tablewright.errors",
    "RemoteUnavailableError": "tablewright.errors",
    "RemoteSchemaError": "tablewright.errors",
    "SchemaConversionError": "tablewright.errors",
    "ErrorKind": "tablewright.errors",
    "classify": "tablewright.errors",
}


def __getattr__(name: str) -> object:
    """Lazy import of public API members."""
    module_name = _MODULES.get(name)
    if module_name is None:
        msg = f"module {__name__!r} has no attribute {name!r}"
        raise AttributeError(msg)
    import importlib

    return getattr(importlib.import_module(module_name), name)
