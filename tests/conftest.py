"""Shared test fixtures for tablewright tests.

Provides in-memory fakes for the table store, health sink and alert sink,
and controllable replacements for asyncio.sleep.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import pytest

from tablewright.alerts import Alert
from tablewright.config import RetryConfig, TablewrightConfig, TooManyColumnsConfig
from tablewright.coordinator import SchemaEvolutionCoordinator
from tablewright.errors import REASON_DUPLICATE, RemoteSchemaError
from tablewright.fields import (
    Field,
    FieldList,
    PrimitiveKind,
    TableCreationSpec,
    TableIdentifier,
)

COOL_DOWN_SECONDS = 300.0


class InMemoryTableStore:
    """Table store keeping the schema in memory.

    Errors queued in ``*_errors`` are raised, in order, by the next calls
    before the store starts succeeding again.
    """

    def __init__(self, schema: FieldList | None = None) -> None:
        self.schema = schema or FieldList.empty()
        self.created = False
        self.fetch_calls = 0
        self.apply_calls: list[FieldList] = []
        self.create_calls: list[TableCreationSpec] = []
        self.fetch_errors: list[Exception] = []
        self.apply_errors: list[Exception] = []
        self.create_errors: list[Exception] = []
        self.after_apply_error: Callable[[], None] | None = None

    @property
    def remote_calls(self) -> int:
        return self.fetch_calls + len(self.apply_calls) + len(self.create_calls)

    async def fetch_current_schema(self, table: TableIdentifier) -> FieldList:
        self.fetch_calls += 1
        await asyncio.sleep(0)
        if self.fetch_errors:
            raise self.fetch_errors.pop(0)
        return self.schema

    async def apply_merged_schema(self, table: TableIdentifier, fields: FieldList) -> FieldList:
        self.apply_calls.append(fields)
        await asyncio.sleep(0)
        if self.apply_errors:
            error = self.apply_errors.pop(0)
            if self.after_apply_error is not None:
                self.after_apply_error()
            raise error
        self.schema = fields
        return fields

    async def create_table(self, spec: TableCreationSpec) -> None:
        self.create_calls.append(spec)
        await asyncio.sleep(0)
        if self.create_errors:
            raise self.create_errors.pop(0)
        if self.created:
            raise RemoteSchemaError(REASON_DUPLICATE, f"Already Exists: Table {spec.table}")
        self.created = True
        self.schema = spec.fields


class RecordingHealth:
    """Health sink recording every signal."""

    def __init__(self) -> None:
        self.events: list[tuple[str, str]] = []

    def set_healthy(self, component: str) -> None:
        self.events.append(("healthy", getattr(component, "value", component)))

    def set_unhealthy(self, component: str) -> None:
        self.events.append(("unhealthy", getattr(component, "value", component)))

    @property
    def signals(self) -> list[str]:
        return [event for event, _ in self.events]


class RecordingMonitoring:
    """Alert sink recording every alert."""

    def __init__(self) -> None:
        self.alerts: list[Alert] = []

    def alert(self, alert: Alert) -> None:
        self.alerts.append(alert)


class InstantSleep:
    """Replacement for asyncio.sleep that records delays and returns at once."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


class FakeClock:
    """Controllable clock: sleepers wake only when time is advanced."""

    def __init__(self) -> None:
        self.now = 0.0
        self.requested: list[float] = []
        self._sleepers: list[tuple[float, asyncio.Future[None]]] = []

    async def sleep(self, delay: float) -> None:
        self.requested.append(delay)
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._sleepers.append((self.now + delay, future))
        await future

    async def advance(self, seconds: float) -> None:
        await _yield_to_loop()
        self.now += seconds
        for entry in list(self._sleepers):
            deadline, future = entry
            if deadline <= self.now:
                self._sleepers.remove(entry)
                if not future.done():
                    future.set_result(None)
        await _yield_to_loop()


async def _yield_to_loop() -> None:
    for _ in range(10):
        await asyncio.sleep(0)


def make_field(name: str, kind: PrimitiveKind = PrimitiveKind.STRING) -> Field:
    return Field.primitive(name, kind)


@pytest.fixture
def table_id() -> TableIdentifier:
    return TableIdentifier(project="acme", dataset="atomic", name="events")


@pytest.fixture
def config(table_id: TableIdentifier) -> TablewrightConfig:
    """Config with deterministic backoff (1s, 2s, 4s, ...) and a 300s cool-down."""
    return TablewrightConfig(
        table=table_id,
        retries=RetryConfig(
            initial_wait_seconds=1.0,
            backoff_multiplier=2.0,
            max_wait_seconds=30.0,
            jitter_seconds=0.0,
            too_many_columns=TooManyColumnsConfig(delay_seconds=COOL_DOWN_SECONDS),
        ),
    )


@pytest.fixture
def fields_abcd() -> tuple[Field, Field, Field, Field]:
    return make_field("a"), make_field("b"), make_field("c"), make_field("d")


@pytest.fixture
def store() -> InMemoryTableStore:
    return InMemoryTableStore()


@pytest.fixture
def health() -> RecordingHealth:
    return RecordingHealth()


@pytest.fixture
def monitoring() -> RecordingMonitoring:
    return RecordingMonitoring()


@pytest.fixture
def instant_sleep() -> InstantSleep:
    return InstantSleep()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def coordinator(
    store: InMemoryTableStore,
    config: TablewrightConfig,
    health: RecordingHealth,
    monitoring: RecordingMonitoring,
    instant_sleep: InstantSleep,
) -> SchemaEvolutionCoordinator:
    """Coordinator whose waits return immediately."""
    return SchemaEvolutionCoordinator(
        store, config, health=health, monitoring=monitoring, sleep=instant_sleep
    )


@pytest.fixture
def clocked_coordinator(
    store: InMemoryTableStore,
    config: TablewrightConfig,
    health: RecordingHealth,
    monitoring: RecordingMonitoring,
    clock: FakeClock,
) -> SchemaEvolutionCoordinator:
    """Coordinator whose waits are driven by a FakeClock."""
    return SchemaEvolutionCoordinator(
        store, config, health=health, monitoring=monitoring, sleep=clock.sleep
    )
