"""Unit tests for SchemaEvolutionCoordinator.

Tests for:
- add_columns merge, race retry and generic retry paths
- Circuit breaker trip, cool-down and shutdown
- create_table idempotency
"""

from __future__ import annotations

import asyncio

import pytest
from structlog.testing import capture_logs

from tablewright.alerts import FailedToAddColumns, FailedToCreateTable
from tablewright.coordinator import AddColumnsSwitch, SchemaEvolutionCoordinator
from tablewright.errors import RemoteSchemaError, RemoteUnavailableError
from tablewright.fields import Field, FieldList, PrimitiveKind

TOO_MANY_LEAF_FIELDS = RemoteSchemaError("invalid", "Too many total leaf fields: 10001")


class TestAddColumnsSwitch:
    """Tests for AddColumnsSwitch."""

    def test_initially_enabled(self) -> None:
        assert AddColumnsSwitch().enabled is True

    def test_only_first_disable_reports_transition(self) -> None:
        switch = AddColumnsSwitch()

        assert switch.try_disable() is True
        assert switch.try_disable() is False
        assert switch.enabled is False

    def test_enable_after_disable(self) -> None:
        switch = AddColumnsSwitch()
        switch.try_disable()

        switch.enable()

        assert switch.enabled is True
        assert switch.try_disable() is True


class TestAddColumns:
    """Tests for add_columns merge behaviour."""

    @pytest.mark.asyncio
    async def test_merges_new_columns_after_existing(
        self, coordinator, store, monitoring, health, fields_abcd
    ) -> None:
        """Test existing [a, b] + requested [b, c, d] pushes [a, b, c, d]."""
        a, b, c, d = fields_abcd
        store.schema = FieldList.of(a, b)

        result = await coordinator.add_columns([b, c, d])

        assert store.apply_calls == [FieldList.of(a, b, c, d)]
        assert result.names == ("a", "b", "c", "d")
        assert monitoring.alerts == []
        assert health.events == []

    @pytest.mark.asyncio
    async def test_fetches_schema_before_every_attempt(
        self, coordinator, store, fields_abcd
    ) -> None:
        a, b, c, _ = fields_abcd
        store.schema = FieldList.of(a)

        await coordinator.add_columns([b])
        await coordinator.add_columns([c])

        assert store.fetch_calls == 2
        assert store.apply_calls[1] == FieldList.of(a, b, c)

    @pytest.mark.asyncio
    async def test_add_field_adds_single_column(self, coordinator, store, fields_abcd) -> None:
        a, b, _, _ = fields_abcd
        store.schema = FieldList.of(a)

        result = await coordinator.add_field(b)

        assert result.names == ("a", "b")
        assert len(store.apply_calls) == 1

    @pytest.mark.asyncio
    async def test_logs_alteration(self, coordinator, store, fields_abcd) -> None:
        _, b, c, _ = fields_abcd

        with capture_logs() as logs:
            await coordinator.add_columns([b, c])

        altering = [log for log in logs if log["event"] == "altering_table"]
        assert altering[0]["columns"] == ["b", "c"]
        assert altering[0]["table"] == "acme.atomic.events"


class TestConcurrentModification:
    """Tests for the stale-schema (race) path."""

    @pytest.mark.asyncio
    async def test_retries_against_fresh_schema(
        self, coordinator, store, health, monitoring, instant_sleep, fields_abcd
    ) -> None:
        """Test a rejected push is retried on top of the other writer's schema."""
        a, b, c, _ = fields_abcd
        x = Field.primitive("x", PrimitiveKind.LONG)
        store.schema = FieldList.of(a, b)
        store.apply_errors = [
            RemoteSchemaError("invalid", "Provided schema does not match the current table schema")
        ]

        def other_writer_wins() -> None:
            store.schema = FieldList.of(a, b, x)

        store.after_apply_error = other_writer_wins

        with capture_logs() as logs:
            result = await coordinator.add_columns([c])

        assert store.fetch_calls == 2
        assert store.apply_calls == [FieldList.of(a, b, c), FieldList.of(a, b, x, c)]
        assert result.names == ("a", "b", "x", "c")
        assert instant_sleep.delays == [1.0]
        assert health.signals == ["unhealthy", "healthy"]
        assert len(monitoring.alerts) == 1
        assert coordinator.adding_columns_enabled is True

        warnings = [log for log in logs if log["event"] == "table_altered_concurrently"]
        assert len(warnings) == 1
        assert warnings[0]["log_level"] == "warning"


class TestTransientFailures:
    """Tests for unclassified failures."""

    @pytest.mark.asyncio
    async def test_transport_failure_retried_with_backoff(
        self, coordinator, store, health, monitoring, instant_sleep, fields_abcd
    ) -> None:
        a, b, _, _ = fields_abcd
        store.schema = FieldList.of(a)
        store.fetch_errors = [
            RemoteUnavailableError(cause="connection reset"),
            RemoteUnavailableError(cause="connection reset"),
        ]

        result = await coordinator.add_columns([b])

        assert result.names == ("a", "b")
        assert instant_sleep.delays == [1.0, 2.0]
        assert health.signals == ["unhealthy", "unhealthy", "healthy"]
        assert len(monitoring.alerts) == 2
        alert = monitoring.alerts[0]
        assert isinstance(alert, FailedToAddColumns)
        assert alert.columns == ("b",)
        assert "connection reset" in alert.cause

    @pytest.mark.asyncio
    async def test_unknown_reason_retried(self, coordinator, store, monitoring, fields_abcd) -> None:
        a, _, _, _ = fields_abcd
        store.apply_errors = [RemoteSchemaError("backendError", "Please try again")]

        result = await coordinator.add_columns([a])

        assert result.names == ("a",)
        assert len(store.apply_calls) == 2
        assert len(monitoring.alerts) == 1
        assert coordinator.adding_columns_enabled is True


class TestCircuitBreaker:
    """Tests for the too-many-columns circuit breaker."""

    @pytest.mark.asyncio
    async def test_trip_returns_empty_and_alerts_once(
        self, clocked_coordinator, store, health, monitoring, fields_abcd
    ) -> None:
        a, b, c, _ = fields_abcd
        store.schema = FieldList.of(a)
        store.apply_errors = [TOO_MANY_LEAF_FIELDS]

        async with clocked_coordinator:
            result = await clocked_coordinator.add_columns([b, c])

            assert result == FieldList.empty()
            assert clocked_coordinator.adding_columns_enabled is False
            assert len(store.apply_calls) == 1
            assert len(monitoring.alerts) == 1
            assert monitoring.alerts[0].columns == ("b", "c")
            assert health.events == []

    @pytest.mark.asyncio
    async def test_too_many_columns_message_trips(
        self, clocked_coordinator, store, fields_abcd
    ) -> None:
        a, _, _, _ = fields_abcd
        store.apply_errors = [RemoteSchemaError("INVALID", "Too many columns (10000) in schema")]

        async with clocked_coordinator:
            result = await clocked_coordinator.add_columns([a])

            assert len(result) == 0
            assert clocked_coordinator.adding_columns_enabled is False

    @pytest.mark.asyncio
    async def test_disabled_makes_no_remote_calls(
        self, clocked_coordinator, store, monitoring, fields_abcd
    ) -> None:
        """Test concurrent calls while disabled return empty without touching the store."""
        a, b, c, d = fields_abcd
        store.apply_errors = [TOO_MANY_LEAF_FIELDS]

        async with clocked_coordinator:
            await clocked_coordinator.add_columns([a])
            calls_after_trip = store.remote_calls

            results = await asyncio.gather(
                *(clocked_coordinator.add_columns([b, c, d]) for _ in range(10))
            )

            assert all(result == FieldList.empty() for result in results)
            assert store.remote_calls == calls_after_trip
            assert len(monitoring.alerts) == 1

    @pytest.mark.asyncio
    async def test_reenabled_after_exactly_the_cool_down(
        self, clocked_coordinator, store, clock, fields_abcd
    ) -> None:
        a, b, _, _ = fields_abcd
        store.apply_errors = [TOO_MANY_LEAF_FIELDS]

        async with clocked_coordinator:
            await clocked_coordinator.add_columns([a])

            await clock.advance(299.0)
            assert clocked_coordinator.adding_columns_enabled is False

            await clock.advance(1.0)
            assert clocked_coordinator.adding_columns_enabled is True
            assert clock.requested == [300.0]

            result = await clocked_coordinator.add_columns([b])
            assert result.names == ("b",)

    @pytest.mark.asyncio
    async def test_concurrent_trips_schedule_single_timer(
        self, clocked_coordinator, store, clock, monitoring, fields_abcd
    ) -> None:
        a, b, _, _ = fields_abcd
        store.apply_errors = [TOO_MANY_LEAF_FIELDS, TOO_MANY_LEAF_FIELDS]

        async with clocked_coordinator:
            results = await asyncio.gather(
                clocked_coordinator.add_columns([a]),
                clocked_coordinator.add_columns([b]),
            )

            assert results == [FieldList.empty(), FieldList.empty()]
            assert len(monitoring.alerts) == 2
            await clock.advance(0.0)
            assert clock.requested == [300.0]

            await clock.advance(300.0)
            assert clocked_coordinator.adding_columns_enabled is True

    @pytest.mark.asyncio
    async def test_aclose_cancels_pending_reenable(
        self, clocked_coordinator, store, clock, fields_abcd
    ) -> None:
        a, _, _, _ = fields_abcd
        store.apply_errors = [TOO_MANY_LEAF_FIELDS]

        await clocked_coordinator.add_columns([a])
        await clock.advance(0.0)
        await clocked_coordinator.aclose()
        with capture_logs() as logs:
            await clock.advance(300.0)

        assert clocked_coordinator.adding_columns_enabled is False
        assert clock.requested == [300.0]
        assert not any(log["event"] == "adding_columns_reenabled" for log in logs)


class TestCreateTable:
    """Tests for create_table."""

    @pytest.mark.asyncio
    async def test_creates_table_from_creation_spec(
        self, coordinator, store, monitoring
    ) -> None:
        await coordinator.create_table()

        assert store.create_calls == [coordinator.creation_spec]
        assert coordinator.creation_spec.partitioning.column == "load_tstamp"
        assert monitoring.alerts == []

    @pytest.mark.asyncio
    async def test_duplicate_is_success_without_alert(
        self, coordinator, store, health, monitoring
    ) -> None:
        store.created = True

        await coordinator.create_table()

        assert len(store.create_calls) == 1
        assert monitoring.alerts == []
        assert health.events == []

    @pytest.mark.asyncio
    async def test_access_denied_is_success_without_alert(
        self, coordinator, store, monitoring
    ) -> None:
        store.create_errors = [RemoteSchemaError("accessDenied", "Access Denied: Dataset atomic")]

        with capture_logs() as logs:
            await coordinator.create_table()

        assert len(store.create_calls) == 1
        assert monitoring.alerts == []
        assert any(log["event"] == "table_create_access_denied" for log in logs)

    @pytest.mark.asyncio
    async def test_concurrent_creates_both_succeed(self, coordinator, store, monitoring) -> None:
        await asyncio.gather(coordinator.create_table(), coordinator.create_table())

        assert len(store.create_calls) == 2
        assert store.created is True
        assert monitoring.alerts == []

    @pytest.mark.asyncio
    async def test_other_failure_retried_with_alert(
        self, coordinator, store, health, monitoring, instant_sleep
    ) -> None:
        store.create_errors = [RemoteSchemaError("invalid", "Partition column missing")]

        await coordinator.create_table()

        assert len(store.create_calls) == 2
        assert store.created is True
        assert instant_sleep.delays == [1.0]
        assert health.signals == ["unhealthy", "healthy"]
        assert len(monitoring.alerts) == 1
        assert isinstance(monitoring.alerts[0], FailedToCreateTable)
        assert monitoring.alerts[0].table == "acme.atomic.events"


class TestCoordinatorLifecycle:
    """Tests for construction and shutdown."""

    def test_builds_creation_spec_from_config(self, coordinator, config) -> None:
        spec = coordinator.creation_spec

        assert spec.table == config.table
        assert spec.fields.names == tuple(f.name for f in config.atomic_fields)

    @pytest.mark.asyncio
    async def test_aclose_without_pending_timer(self, coordinator) -> None:
        await coordinator.aclose()

        assert coordinator.adding_columns_enabled is True

    @pytest.mark.asyncio
    async def test_context_manager_returns_coordinator(self, coordinator) -> None:
        async with coordinator as entered:
            assert isinstance(entered, SchemaEvolutionCoordinator)
