"""Table store adapter: read, alter and create the events table.

This module provides:
- TableStore: protocol the coordinator drives
- IcebergTableStore: implementation over a PyIceberg catalog
- Conversion between the schema model and Iceberg types

Blocking catalog calls run in worker threads so that many schema operations
can be in flight on one event loop. PyIceberg exceptions are translated at
this boundary into RemoteSchemaError reasons and RemoteUnavailableError.
"""

from __future__ import annotations

import asyncio
import itertools
import re
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from pyiceberg.exceptions import (
    BadRequestError,
    CommitFailedException,
    ForbiddenError,
    NoSuchTableError,
    ServerError,
    ServiceUnavailableError,
    TableAlreadyExistsError,
    UnauthorizedError,
    ValidationError,
)
from pyiceberg.partitioning import PartitionField, PartitionSpec
from pyiceberg.schema import Schema
from pyiceberg.transforms import DayTransform
from pyiceberg.types import (
    BinaryType,
    BooleanType,
    DateType,
    DecimalType,
    DoubleType,
    FixedType,
    FloatType,
    IcebergType,
    IntegerType,
    ListType,
    LongType,
    MapType,
    NestedField,
    StringType,
    StructType,
    TimestampType,
    TimestampNanoType,
    TimestamptzNanoType,
    TimestamptzType,
    TimeType,
    UUIDType,
)

from tablewright.errors import (
    REASON_ACCESS_DENIED,
    REASON_DUPLICATE,
    REASON_INVALID,
    REASON_NOT_FOUND,
    RemoteSchemaError,
    RemoteUnavailableError,
    SchemaConversionError,
)
from tablewright.fields import (
    Field,
    FieldList,
    FieldType,
    OpaqueType,
    PrimitiveKind,
    PrimitiveType,
    RecordType,
    RepeatedType,
    TableCreationSpec,
    TableIdentifier,
    TimePartitioning,
)
from tablewright.observability import get_logger, table_operation

if TYPE_CHECKING:
    from pyiceberg.catalog import Catalog
    from structlog.stdlib import BoundLogger

# First partition field ID, per the Iceberg spec
PARTITION_FIELD_ID_START = 1000

# "BadRequestException: ..." prefix added by the REST catalog client
_REST_PREFIX = re.compile(r"^\w+(?:Exception|Error):\s*")

_TO_ICEBERG: dict[PrimitiveKind, IcebergType] = {
    PrimitiveKind.BOOLEAN: BooleanType(),
    PrimitiveKind.INTEGER: IntegerType(),
    PrimitiveKind.LONG: LongType(),
    PrimitiveKind.FLOAT: FloatType(),
    PrimitiveKind.DOUBLE: DoubleType(),
    PrimitiveKind.DATE: DateType(),
    PrimitiveKind.TIME: TimeType(),
    PrimitiveKind.TIMESTAMP: TimestampType(),
    PrimitiveKind.TIMESTAMPTZ: TimestamptzType(),
    PrimitiveKind.TIMESTAMP_NS: TimestampNanoType(),
    PrimitiveKind.TIMESTAMPTZ_NS: TimestamptzNanoType(),
    PrimitiveKind.STRING: StringType(),
    PrimitiveKind.UUID: UUIDType(),
    PrimitiveKind.BINARY: BinaryType(),
}

_FROM_ICEBERG: dict[type, PrimitiveKind] = {
    BooleanType: PrimitiveKind.BOOLEAN,
    IntegerType: PrimitiveKind.INTEGER,
    LongType: PrimitiveKind.LONG,
    FloatType: PrimitiveKind.FLOAT,
    DoubleType: PrimitiveKind.DOUBLE,
    DateType: PrimitiveKind.DATE,
    TimeType: PrimitiveKind.TIME,
    TimestampType: PrimitiveKind.TIMESTAMP,
    TimestamptzType: PrimitiveKind.TIMESTAMPTZ,
    TimestampNanoType: PrimitiveKind.TIMESTAMP_NS,
    TimestamptzNanoType: PrimitiveKind.TIMESTAMPTZ_NS,
    StringType: PrimitiveKind.STRING,
    UUIDType: PrimitiveKind.UUID,
    BinaryType: PrimitiveKind.BINARY,
    FixedType: PrimitiveKind.BINARY,
}


@runtime_checkable
class TableStore(Protocol):
    """Remote table store holding the authoritative schema."""

    async def fetch_current_schema(self, table: TableIdentifier) -> FieldList:
        """Read the live schema of ``table``."""
        ...

    async def apply_merged_schema(self, table: TableIdentifier, fields: FieldList) -> FieldList:
        """Replace the schema of ``table`` and return what the store now reports."""
        ...

    async def create_table(self, spec: TableCreationSpec) -> None:
        """Create the table described by ``spec``."""
        ...


class IcebergTableStore:
    """Table store backed by a PyIceberg catalog.

    The Iceberg identifier is ``(dataset, name)``; the project is carried in
    logs and spans only.

    Example:
        >>> from pyiceberg.catalog import load_catalog
        >>> store = IcebergTableStore(load_catalog("default"))
        >>> fields = await store.fetch_current_schema(table)
    """

    def __init__(
        self,
        catalog: Catalog,
        *,
        logger: BoundLogger | None = None,
    ) -> None:
        """Initialize IcebergTableStore.

        Args:
            catalog: PyIceberg catalog holding the table.
            logger: Optional structlog logger. Uses default if not provided.
        """
        self._catalog = catalog
        self._logger = logger or get_logger()

    @property
    def catalog(self) -> Catalog:
        """Return the underlying catalog instance."""
        return self._catalog

    async def fetch_current_schema(self, table: TableIdentifier) -> FieldList:
        """Read the live schema of a table.

        Raises:
            RemoteSchemaError: If the table does not exist ("notFound").
            RemoteUnavailableError: If the catalog cannot be reached.
        """
        table_str = str(table)
        with table_operation("fetch_current_schema", table=table_str):
            with _remote_errors(table_str):
                iceberg_table = await asyncio.to_thread(
                    self._catalog.load_table, table.catalog_identifier
                )
            return from_iceberg_schema(iceberg_table.schema())

    async def apply_merged_schema(self, table: TableIdentifier, fields: FieldList) -> FieldList:
        """Push a full replacement schema.

        ``fields`` must contain every column the table currently has, followed
        by the columns to add. If the live table has a column that ``fields``
        lacks, the caller's view is stale and the push is rejected as
        "invalid". Concurrent commits are rejected by the catalog the same way.

        Args:
            table: Table to alter.
            fields: Current columns plus the new ones.

        Returns:
            The schema the table reports after the change.

        Raises:
            RemoteSchemaError: If the store rejects the change.
            RemoteUnavailableError: If the catalog cannot be reached.
        """
        table_str = str(table)
        with table_operation("apply_merged_schema", table=table_str, columns=len(fields)):
            with _remote_errors(table_str):
                schema = await asyncio.to_thread(self._apply, table, fields)
            return from_iceberg_schema(schema)

    def _apply(self, table: TableIdentifier, fields: FieldList) -> Schema:
        iceberg_table = self._catalog.load_table(table.catalog_identifier)
        current_names = [f.name for f in iceberg_table.schema().fields]

        missing = [name for name in current_names if fields.get(name) is None]
        if missing:
            msg = (
                "Provided schema does not match the current table schema; "
                f"missing columns: {', '.join(missing)}"
            )
            raise RemoteSchemaError(REASON_INVALID, msg, table=str(table))

        existing = set(current_names)
        additions = [f for f in fields if f.name not in existing]
        if not additions:
            return iceberg_table.schema()

        ids = itertools.count(1)
        # Iceberg only allows optional columns to be added to an existing table
        with iceberg_table.update_schema() as update:
            for f in additions:
                update.add_column(f.name, to_iceberg_type(f.field_type, ids), required=False)
        self._logger.info(
            "table_schema_updated",
            table=str(table),
            added=[f.name for f in additions],
        )
        return iceberg_table.schema()

    async def create_table(self, spec: TableCreationSpec) -> None:
        """Create a table with the baseline columns, partitioned by day.

        Raises:
            RemoteSchemaError: If the store rejects the creation
                ("duplicate", "accessDenied", ...).
            RemoteUnavailableError: If the catalog cannot be reached.
        """
        table_str = str(spec.table)
        with table_operation("create_table", table=table_str, columns=len(spec.fields)):
            schema = to_iceberg_schema(spec.fields)
            partition_spec = build_partition_spec(schema, spec.partitioning)
            self._logger.info(
                "creating_table",
                table=table_str,
                partition_column=spec.partitioning.column,
            )
            with _remote_errors(table_str):
                await asyncio.to_thread(
                    self._catalog.create_table,
                    identifier=spec.table.catalog_identifier,
                    schema=schema,
                    partition_spec=partition_spec,
                )
            self._logger.info("table_created", table=table_str)


@contextmanager
def _remote_errors(table: str) -> Iterator[None]:
    """Translate PyIceberg exceptions into tablewright exceptions."""
    try:
        yield
    except TableAlreadyExistsError as exc:
        raise RemoteSchemaError(REASON_DUPLICATE, _remote_message(exc), table=table) from exc
    except (ForbiddenError, UnauthorizedError) as exc:
        raise RemoteSchemaError(REASON_ACCESS_DENIED, _remote_message(exc), table=table) from exc
    except NoSuchTableError as exc:
        raise RemoteSchemaError(REASON_NOT_FOUND, _remote_message(exc), table=table) from exc
    except (CommitFailedException, BadRequestError, ValidationError, ValueError) as exc:
        raise RemoteSchemaError(REASON_INVALID, _remote_message(exc), table=table) from exc
    except (ServerError, ServiceUnavailableError, OSError) as exc:
        raise RemoteUnavailableError(table=table, cause=str(exc)) from exc


def _remote_message(exc: Exception) -> str:
    return _REST_PREFIX.sub("", str(exc), count=1)


# -----------------------------------------------------------------------------
# Type conversion
# -----------------------------------------------------------------------------


def to_iceberg_type(field_type: FieldType, ids: Iterator[int]) -> IcebergType:
    """Convert a schema-model type to an Iceberg type.

    Args:
        field_type: Type to convert.
        ids: Source of field IDs for nested fields and list elements.

    Raises:
        SchemaConversionError: If the type is an OpaqueType.
    """
    if isinstance(field_type, PrimitiveType):
        if field_type.primitive is PrimitiveKind.DECIMAL:
            return DecimalType(field_type.precision, field_type.scale)
        return _TO_ICEBERG[field_type.primitive]
    if isinstance(field_type, RepeatedType):
        element_id = next(ids)
        return ListType(
            element_id,
            to_iceberg_type(field_type.element, ids),
            not field_type.element_nullable,
        )
    if isinstance(field_type, RecordType):
        return StructType(*(to_nested_field(f, ids) for f in field_type.fields))
    raise SchemaConversionError(
        f"Cannot write column type {field_type} back to the table",
        type_name=str(field_type),
    )


def to_nested_field(field: Field, ids: Iterator[int]) -> NestedField:
    """Convert a field to an Iceberg NestedField, assigning IDs parent first."""
    field_id = next(ids)
    return NestedField(
        field_id=field_id,
        name=field.name,
        field_type=to_iceberg_type(field.field_type, ids),
        required=not field.nullable,
    )


def to_iceberg_schema(fields: FieldList) -> Schema:
    """Convert a field list to an Iceberg Schema with sequential field IDs."""
    ids = itertools.count(1)
    return Schema(*(to_nested_field(f, ids) for f in fields))


def from_iceberg_type(iceberg_type: IcebergType, column: str) -> FieldType:
    """Convert an Iceberg type to a schema-model type.

    Maps are read as repeated ``key``/``value`` records; fixed as binary.
    Any other type (``unknown``, ``geometry``, ...) is read as an OpaqueType,
    so that the column is still known by name.
    """
    if isinstance(iceberg_type, DecimalType):
        return PrimitiveType(
            primitive=PrimitiveKind.DECIMAL,
            precision=iceberg_type.precision,
            scale=iceberg_type.scale,
        )
    kind = _FROM_ICEBERG.get(type(iceberg_type))
    if kind is not None:
        return PrimitiveType(primitive=kind)
    if isinstance(iceberg_type, ListType):
        return RepeatedType(
            element=from_iceberg_type(iceberg_type.element_type, column),
            element_nullable=not iceberg_type.element_required,
        )
    if isinstance(iceberg_type, MapType):
        entry = RecordType(
            fields=(
                Field(
                    name="key",
                    field_type=from_iceberg_type(iceberg_type.key_type, column),
                    nullable=False,
                ),
                Field(
                    name="value",
                    field_type=from_iceberg_type(iceberg_type.value_type, column),
                    nullable=not iceberg_type.value_required,
                ),
            )
        )
        return RepeatedType(element=entry, element_nullable=False)
    if isinstance(iceberg_type, StructType):
        return RecordType(fields=tuple(from_nested_field(f) for f in iceberg_type.fields))
    return OpaqueType(type_name=str(iceberg_type))


def from_nested_field(nested: NestedField) -> Field:
    """Convert an Iceberg NestedField to a field."""
    return Field(
        name=nested.name,
        field_type=from_iceberg_type(nested.field_type, nested.name),
        nullable=not nested.required,
    )


def from_iceberg_schema(schema: Schema) -> FieldList:
    """Convert an Iceberg Schema to a field list, keeping column order."""
    return FieldList(tuple(from_nested_field(f) for f in schema.fields))


def build_partition_spec(schema: Schema, partitioning: TimePartitioning) -> PartitionSpec:
    """Build a daily partition spec on the partitioning column.

    Raises:
        ValueError: If the column is not in the schema.
    """
    try:
        source = schema.find_field(partitioning.column)
    except ValueError as exc:
        msg = f"Source column '{partitioning.column}' not found in schema"
        raise ValueError(msg) from exc
    return PartitionSpec(
        PartitionField(
            source_id=source.field_id,
            field_id=PARTITION_FIELD_ID_START,
            transform=DayTransform(),
            name=f"{partitioning.column}_{partitioning.granularity.value}",
        )
    )
