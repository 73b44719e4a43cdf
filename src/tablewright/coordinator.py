"""Schema-evolution coordinator.

This module provides SchemaEvolutionCoordinator, which callers use to add
columns to and create the events table. It wraps a TableStore with:
- The retry executor (backoff, health and alert signalling)
- A circuit breaker that stops column additions for a cool-down period once
  the table hits its structural column limit
- Classification of store rejections into recovery strategies

No failure the store reports ever reaches the caller: classified rejections
are recovered as normal results and everything else is retried.
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Sequence
from types import TracebackType
from typing import TYPE_CHECKING

from tablewright.alerts import FailedToAddColumns, FailedToCreateTable
from tablewright.errors import ErrorKind, classify
from tablewright.fields import Field, FieldList, TableCreationSpec, merge_in_columns
from tablewright.health import Service
from tablewright.observability import get_logger
from tablewright.retry import Sleep, run_with_retries

if TYPE_CHECKING:
    from structlog.stdlib import BoundLogger

    from tablewright.alerts import Monitoring
    from tablewright.config import TablewrightConfig
    from tablewright.health import HealthSink
    from tablewright.store import TableStore


class AddColumnsSwitch:
    """Thread-safe "column addition enabled" flag.

    Starts enabled. try_disable() is an atomic test-and-set, so when several
    callers trip the breaker at once exactly one of them observes the
    Enabled -> Disabled transition.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._enabled = True

    @property
    def enabled(self) -> bool:
        with self._lock:
            return self._enabled

    def try_disable(self) -> bool:
        """Disable column addition.

        Returns:
            True if this call moved the switch from enabled to disabled.
        """
        with self._lock:
            if not self._enabled:
                return False
            self._enabled = False
            return True

    def enable(self) -> None:
        with self._lock:
            self._enabled = True


class SchemaEvolutionCoordinator:
    """Adds columns to and creates the events table.

    Attributes:
        config: Loader configuration.

    Note:
        Use create_coordinator() factory function instead of direct
        instantiation. Call aclose() (or use ``async with``) on shutdown so
        that a pending re-enable timer does not outlive the coordinator.

    Example:
        >>> async with create_coordinator(config, catalog) as coordinator:
        ...     await coordinator.create_table()
        ...     added = await coordinator.add_columns([field])
    """

    def __init__(
        self,
        store: TableStore,
        config: TablewrightConfig,
        *,
        health: HealthSink,
        monitoring: Monitoring,
        sleep: Sleep = asyncio.sleep,
        logger: BoundLogger | None = None,
    ) -> None:
        """Initialize SchemaEvolutionCoordinator.

        Args:
            store: Table store adapter.
            config: Loader configuration (table, retry policy, baseline columns).
            health: Health sink.
            monitoring: Alert sink.
            sleep: Coroutine used for every wait (retry backoff and cool-down).
            logger: Optional structlog logger. Uses default if not provided.
        """
        self.config = config
        self._store = store
        self._health = health
        self._monitoring = monitoring
        self._sleep = sleep
        self._logger = logger or get_logger()
        self._switch = AddColumnsSwitch()
        self._reenable_task: asyncio.Task[None] | None = None
        self._creation_spec = TableCreationSpec.from_config(config)
        self._closed = False

    @property
    def adding_columns_enabled(self) -> bool:
        """Whether column addition is currently enabled."""
        return self._switch.enabled

    @property
    def creation_spec(self) -> TableCreationSpec:
        return self._creation_spec

    # ==================== Caller API ====================

    async def add_columns(self, columns: Sequence[Field]) -> FieldList:
        """Attempt to add columns to the table.

        Returns:
            Fields which are guaranteed to eventually exist in the table.
            They may not be visible immediately. The list is empty when
            column addition is disabled or the column limit was just hit;
            the caller should retry that batch later.
        """
        if not self._switch.enabled:
            return FieldList.empty()

        table = self.config.table
        names = tuple(c.name for c in columns)

        async def attempt() -> FieldList:
            self._logger.info("altering_table", table=str(table), columns=list(names))
            try:
                current = await self._store.fetch_current_schema(table)
                merged = merge_in_columns(current, columns)
                return await self._store.apply_merged_schema(table, merged)
            except Exception as exc:
                kind = classify(exc)
                if kind is ErrorKind.TOO_MANY_COLUMNS:
                    return self._trip(names, exc)
                if kind is ErrorKind.CONCURRENT_MODIFICATION:
                    self._logger.warning(
                        "table_altered_concurrently",
                        table=str(table),
                        error=str(exc),
                        hint="another loader has probably already altered the table",
                    )
                raise

        return await run_with_retries(
            attempt,
            config=self.config.retries,
            health=self._health,
            monitoring=self._monitoring,
            alert=lambda exc: FailedToAddColumns(table=str(table), columns=names, cause=str(exc)),
            component=Service.TABLE_STORE,
            operation_name="add_columns",
            sleep=self._sleep,
        )

    async def add_field(self, field: Field) -> FieldList:
        """Add a single column; see add_columns()."""
        return await self.add_columns([field])

    async def create_table(self) -> None:
        """Create the table if it does not already exist.

        "Already exists" and "access denied" responses are treated as
        success; anything else is retried.
        """
        spec = self._creation_spec
        table = str(spec.table)

        async def attempt() -> None:
            try:
                await self._store.create_table(spec)
            except Exception as exc:
                kind = classify(exc)
                if kind is ErrorKind.DUPLICATE:
                    self._logger.info("table_already_exists", table=table, error=str(exc))
                    return
                if kind is ErrorKind.ACCESS_DENIED:
                    self._logger.info(
                        "table_create_access_denied",
                        table=table,
                        hint="assuming the table already exists",
                    )
                    return
                raise

        await run_with_retries(
            attempt,
            config=self.config.retries,
            health=self._health,
            monitoring=self._monitoring,
            alert=lambda exc: FailedToCreateTable(table=table, cause=str(exc)),
            component=Service.TABLE_STORE,
            operation_name="create_table",
            sleep=self._sleep,
        )

    # ==================== Circuit breaker ====================

    def _trip(self, names: tuple[str, ...], exc: Exception) -> FieldList:
        table = str(self.config.table)
        delay = self.config.retries.too_many_columns.delay_seconds
        self._logger.error(
            "too_many_columns",
            table=table,
            columns=list(names),
            error=str(exc),
            reenable_after_seconds=delay,
        )
        self._monitoring.alert(FailedToAddColumns(table=table, columns=names, cause=str(exc)))
        if self._switch.try_disable():
            self._schedule_reenable(delay)
        return FieldList.empty()

    def _schedule_reenable(self, delay: float) -> None:
        if self._closed:
            return
        self._reenable_task = asyncio.get_running_loop().create_task(
            self._reenable_after(delay), name="tablewright-reenable-add-columns"
        )

    async def _reenable_after(self, delay: float) -> None:
        await self._sleep(delay)
        self._switch.enable()
        self._reenable_task = None
        self._logger.info("adding_columns_reenabled", table=str(self.config.table))

    # ==================== Lifecycle ====================

    async def aclose(self) -> None:
        """Cancel the pending re-enable timer, if any."""
        self._closed = True
        task, self._reenable_task = self._reenable_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def __aenter__(self) -> SchemaEvolutionCoordinator:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()
