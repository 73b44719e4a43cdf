"""Schema model: columns, field lists and table creation descriptors.

This module provides:
- PrimitiveKind, PrimitiveType, RepeatedType, RecordType: structural types
- OpaqueType: store column type with no counterpart in the model
- Field: a named, typed column
- FieldList: an ordered, name-unique sequence of fields
- merge_in_columns: append-only schema merge
- TableIdentifier: (project, dataset, table) address of the table
- TimePartitioning, TableCreationSpec: descriptor used to create the table
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from enum import Enum
from typing import TYPE_CHECKING, Annotated, Literal, Union

import pydantic
from pydantic import BaseModel, ConfigDict, RootModel, field_validator, model_validator
from typing_extensions import Self

if TYPE_CHECKING:
    from tablewright.config import TablewrightConfig


class TableIdentifier(BaseModel):
    """Fully qualified table identifier.

    Attributes:
        project: Project (or warehouse) that owns the dataset.
        dataset: Dataset holding the table; the catalog namespace.
        name: Table name.

    Example:
        >>> tid = TableIdentifier(project="acme", dataset="atomic", name="events")
        >>> str(tid)
        'acme.atomic.events'
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    project: str = pydantic.Field(..., min_length=1, description="Project name")
    dataset: str = pydantic.Field(..., min_length=1, description="Dataset (namespace) name")
    name: str = pydantic.Field(..., min_length=1, description="Table name")

    def __str__(self) -> str:
        """Return fully qualified table identifier."""
        return f"{self.project}.{self.dataset}.{self.name}"

    @property
    def catalog_identifier(self) -> tuple[str, str]:
        """Identifier in catalog form: (namespace, table)."""
        return (self.dataset, self.name)

    @classmethod
    def from_string(cls, identifier: str) -> TableIdentifier:
        """Parse table identifier from a ``project.dataset.table`` string.

        Raises:
            ValueError: If identifier format is invalid.
        """
        parts = identifier.split(".")
        if len(parts) != 3 or not all(parts):
            msg = f"Invalid table identifier format: {identifier}. Expected 'project.dataset.table'"
            raise ValueError(msg)
        return cls(project=parts[0], dataset=parts[1], name=parts[2])

    @field_validator("project", "dataset", "name")
    @classmethod
    def validate_no_dots(cls, v: str) -> str:
        """Validate that identifier parts don't contain dots."""
        if "." in v:
            msg = f"Identifier part cannot contain dots: {v}"
            raise ValueError(msg)
        return v


class PrimitiveKind(str, Enum):
    """Primitive column types understood by the table store."""

    BOOLEAN = "boolean"
    INTEGER = "integer"
    LONG = "long"
    FLOAT = "float"
    DOUBLE = "double"
    DECIMAL = "decimal"
    DATE = "date"
    TIME = "time"
    TIMESTAMP = "timestamp"
    TIMESTAMPTZ = "timestamptz"
    TIMESTAMP_NS = "timestamp_ns"
    TIMESTAMPTZ_NS = "timestamptz_ns"
    STRING = "string"
    UUID = "uuid"
    BINARY = "binary"


class PrimitiveType(BaseModel):
    """A primitive column type.

    Attributes:
        primitive: The primitive kind.
        precision: Decimal precision (DECIMAL only).
        scale: Decimal scale (DECIMAL only).

    Example:
        >>> PrimitiveType(primitive=PrimitiveKind.DECIMAL, precision=38, scale=9)
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["primitive"] = "primitive"
    primitive: PrimitiveKind
    precision: int | None = pydantic.Field(default=None, ge=1, le=38)
    scale: int | None = pydantic.Field(default=None, ge=0)

    @model_validator(mode="after")
    def decimal_parameters(self) -> Self:
        """Require precision/scale for decimals and forbid them elsewhere."""
        if self.primitive is PrimitiveKind.DECIMAL:
            if self.precision is None or self.scale is None:
                msg = "decimal type requires precision and scale"
                raise ValueError(msg)
            if self.scale > self.precision:
                msg = f"decimal scale ({self.scale}) must be <= precision ({self.precision})"
                raise ValueError(msg)
        elif self.precision is not None or self.scale is not None:
            msg = f"precision/scale are only valid for decimal, not {self.primitive.value}"
            raise ValueError(msg)
        return self

    def __str__(self) -> str:
        if self.primitive is PrimitiveKind.DECIMAL:
            return f"decimal({self.precision}, {self.scale})"
        return self.primitive.value


class RepeatedType(BaseModel):
    """A repeated (array) column type."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["repeated"] = "repeated"
    element: FieldType
    element_nullable: bool = True

    def __str__(self) -> str:
        return f"repeated<{self.element}>"


class RecordType(BaseModel):
    """A nested record column type."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["record"] = "record"
    fields: tuple[Field, ...]

    @field_validator("fields")
    @classmethod
    def unique_names(cls, v: tuple[Field, ...]) -> tuple[Field, ...]:
        _check_unique_names(v)
        return v

    def __str__(self) -> str:
        inner = ", ".join(f"{f.name}: {f.field_type}" for f in self.fields)
        return f"record<{inner}>"


class OpaqueType(BaseModel):
    """A column type read from the store that the schema model cannot express.

    Such columns are carried by name so that merging keeps them, but they are
    never converted back and pushed to the store.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["opaque"] = "opaque"
    type_name: str

    def __str__(self) -> str:
        return f"opaque<{self.type_name}>"


FieldType = Annotated[
    Union[PrimitiveType, RepeatedType, RecordType, OpaqueType],
    pydantic.Field(discriminator="kind"),
]


class Field(BaseModel):
    """A named column.

    Two fields are equal iff their name and structural type match;
    nullability does not take part in equality.

    Attributes:
        name: Column name, unique within its table or record.
        field_type: Structural type of the column.
        nullable: Whether the column accepts nulls.

    Example:
        >>> Field.primitive("app_id", PrimitiveKind.STRING)
        Field(name='app_id', field_type=PrimitiveType(...), nullable=True)
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = pydantic.Field(..., min_length=1, description="Column name")
    field_type: FieldType
    nullable: bool = True

    @classmethod
    def primitive(cls, name: str, kind: PrimitiveKind, *, nullable: bool = True) -> Field:
        """Build a field of a non-parameterised primitive type."""
        return cls(name=name, field_type=PrimitiveType(primitive=kind), nullable=nullable)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Field):
            return NotImplemented
        return self.name == other.name and self.field_type == other.field_type

    def __hash__(self) -> int:
        return hash((self.name, self.field_type))


RepeatedType.model_rebuild()
RecordType.model_rebuild()
Field.model_rebuild()


def _check_unique_names(fields: Iterable[Field]) -> None:
    seen: set[str] = set()
    for f in fields:
        if f.name in seen:
            msg = f"Duplicate field name: {f.name}"
            raise ValueError(msg)
        seen.add(f.name)


class FieldList(RootModel[tuple[Field, ...]]):
    """Ordered, name-unique sequence of fields.

    Represents either a batch of requested additions or the table store's
    authoritative schema. Order is insertion order.

    Example:
        >>> fields = FieldList.of(Field.primitive("a", PrimitiveKind.STRING))
        >>> fields.names
        ('a',)
    """

    model_config = ConfigDict(frozen=True)

    root: tuple[Field, ...] = ()

    @field_validator("root")
    @classmethod
    def unique_names(cls, v: tuple[Field, ...]) -> tuple[Field, ...]:
        _check_unique_names(v)
        return v

    @classmethod
    def of(cls, *fields: Field) -> FieldList:
        return cls(tuple(fields))

    @classmethod
    def empty(cls) -> FieldList:
        return cls(())

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(f.name for f in self.root)

    def get(self, name: str) -> Field | None:
        """Return the field called ``name``, or None."""
        for f in self.root:
            if f.name == name:
                return f
        return None

    def __iter__(self) -> Iterator[Field]:  # type: ignore[override]
        return iter(self.root)

    def __len__(self) -> int:
        return len(self.root)

    def __getitem__(self, index: int) -> Field:
        return self.root[index]

    def __bool__(self) -> bool:
        return bool(self.root)


def merge_in_columns(existing: FieldList, candidates: Iterable[Field]) -> FieldList:
    """Append new columns to an existing schema.

    Every candidate whose name is not yet present is appended, in the order
    given. Fields already present are left untouched, even when the
    candidate's type differs. Merging the same candidates twice yields the
    same list as merging once.

    Args:
        existing: The store's current field list.
        candidates: Fields to add.

    Returns:
        Existing fields followed by the new ones.

    Example:
        >>> merged = merge_in_columns(FieldList.of(a, b), [b, c, d])
        >>> merged.names
        ('a', 'b', 'c', 'd')
    """
    known = set(existing.names)
    appended: list[Field] = []
    for candidate in candidates:
        if candidate.name not in known:
            known.add(candidate.name)
            appended.append(candidate)
    if not appended:
        return existing
    return FieldList((*existing.root, *appended))


class PartitionGranularity(str, Enum):
    """Granularity of time-based partitioning."""

    DAY = "day"


class TimePartitioning(BaseModel):
    """Time partitioning directive for a new table."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    column: str = pydantic.Field(..., min_length=1)
    granularity: PartitionGranularity = PartitionGranularity.DAY


_TIMESTAMP_KINDS = (
    PrimitiveKind.TIMESTAMP,
    PrimitiveKind.TIMESTAMPTZ,
    PrimitiveKind.TIMESTAMP_NS,
    PrimitiveKind.TIMESTAMPTZ_NS,
)


class TableCreationSpec(BaseModel):
    """Everything needed to create the events table.

    Built once from configuration: the baseline atomic columns plus daily
    partitioning on the load timestamp column.

    Attributes:
        table: Table to create.
        fields: Baseline columns of the new table.
        partitioning: Time partitioning directive.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    table: TableIdentifier
    fields: FieldList
    partitioning: TimePartitioning

    @model_validator(mode="after")
    def partition_column_is_timestamp(self) -> Self:
        """Validate that the partition column is a timestamp in the schema."""
        column = self.fields.get(self.partitioning.column)
        if column is None:
            msg = f"Partition column '{self.partitioning.column}' not found in table fields"
            raise ValueError(msg)
        field_type = column.field_type
        if not isinstance(field_type, PrimitiveType) or field_type.primitive not in _TIMESTAMP_KINDS:
            msg = (
                f"Partition column '{self.partitioning.column}' must be a timestamp, "
                f"got {field_type}"
            )
            raise ValueError(msg)
        return self

    @classmethod
    def from_config(cls, config: TablewrightConfig) -> TableCreationSpec:
        """Build the creation spec from loader configuration."""
        return cls(
            table=config.table,
            fields=FieldList(tuple(config.atomic_fields)),
            partitioning=TimePartitioning(column=config.partition_column),
        )
