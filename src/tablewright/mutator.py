"""Feed batches of observed fields into the coordinator.

SchemaMutator keeps the set of columns already known to exist, drops those
from each incoming batch, and processes several batches at once.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterable, Sequence
from typing import TYPE_CHECKING

from tablewright.fields import Field, FieldList, merge_in_columns
from tablewright.observability import get_logger

if TYPE_CHECKING:
    from structlog.stdlib import BoundLogger

    from tablewright.coordinator import SchemaEvolutionCoordinator


class SchemaMutator:
    """Applies batches of fields to the table with bounded concurrency.

    Example:
        >>> mutator = SchemaMutator(coordinator, max_concurrency=4)
        >>> await mutator.run(batches)
        >>> mutator.known_columns.names
        ('app_id', ..., 'contexts_com_acme_link_click_1')
    """

    def __init__(
        self,
        coordinator: SchemaEvolutionCoordinator,
        *,
        max_concurrency: int | None = None,
        known_columns: FieldList | None = None,
        logger: BoundLogger | None = None,
    ) -> None:
        """Initialize SchemaMutator.

        Args:
            coordinator: Coordinator used to alter the table.
            max_concurrency: Batches in flight at once. Defaults to the
                coordinator config's max_concurrency.
            known_columns: Columns already known to exist.
            logger: Optional structlog logger. Uses default if not provided.
        """
        self._coordinator = coordinator
        self._max_concurrency = max_concurrency or coordinator.config.max_concurrency
        self._known = known_columns or FieldList.empty()
        self._logger = logger or get_logger()

    @property
    def known_columns(self) -> FieldList:
        return self._known

    async def update_table(self, batch: Sequence[Field]) -> FieldList:
        """Add the unknown fields of ``batch`` to the table.

        Returns:
            Fields the coordinator reported; empty when nothing was new or
            column addition is currently disabled.
        """
        new = [f for f in batch if self._known.get(f.name) is None]
        if not new:
            return FieldList.empty()

        added = await self._coordinator.add_columns(new)
        # No await between read and write: concurrent batches never lose an update
        self._known = merge_in_columns(self._known, added)
        if not added:
            self._logger.info(
                "columns_not_added",
                columns=[f.name for f in new],
                hint="batch will be retried when it is delivered again",
            )
        return added

    async def run(self, batches: AsyncIterable[Sequence[Field]]) -> None:
        """Process every batch from ``batches``, at most max_concurrency at once."""
        semaphore = asyncio.Semaphore(self._max_concurrency)
        tasks: set[asyncio.Task[FieldList]] = set()

        async def process(batch: Sequence[Field]) -> FieldList:
            try:
                return await self.update_table(batch)
            finally:
                semaphore.release()

        try:
            async for batch in batches:
                await semaphore.acquire()
                task = asyncio.create_task(process(batch))
                tasks.add(task)
                task.add_done_callback(tasks.discard)
            if tasks:
                await asyncio.gather(*tasks)
        finally:
            pending = list(tasks)
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
