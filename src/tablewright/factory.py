"""Coordinator factory.

This module provides the create_coordinator() factory function, which wires
the table store, health registry and alert sink into a
SchemaEvolutionCoordinator. Each collaborator is built once here and passed
by reference to whatever needs it.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from tablewright.alerts import LoggingMonitoring
from tablewright.coordinator import SchemaEvolutionCoordinator
from tablewright.health import AppHealth
from tablewright.observability import get_logger, span
from tablewright.store import IcebergTableStore

if TYPE_CHECKING:
    from pyiceberg.catalog import Catalog

    from tablewright.alerts import Monitoring
    from tablewright.config import TablewrightConfig
    from tablewright.health import HealthSink
    from tablewright.retry import Sleep


def create_coordinator(
    config: TablewrightConfig,
    catalog: Catalog,
    *,
    health: HealthSink | None = None,
    monitoring: Monitoring | None = None,
    sleep: Sleep = asyncio.sleep,
) -> SchemaEvolutionCoordinator:
    """Create a schema-evolution coordinator for an Iceberg table.

    Args:
        config: Loader configuration.
        catalog: PyIceberg catalog holding the table.
        health: Health sink. Defaults to a new AppHealth.
        monitoring: Alert sink. Defaults to LoggingMonitoring.
        sleep: Coroutine used for every wait.

    Returns:
        SchemaEvolutionCoordinator: Configured coordinator.

    Example:
        >>> from pyiceberg.catalog import load_catalog
        >>> config = TablewrightConfig.from_yaml("tablewright.yaml")
        >>> coordinator = create_coordinator(config, load_catalog("default"))
    """
    logger = get_logger()
    with span("create_coordinator", attributes={"table.name": str(config.table)}):
        logger.info("creating_coordinator", table=str(config.table))
        return SchemaEvolutionCoordinator(
            IcebergTableStore(catalog),
            config,
            health=health or AppHealth(),
            monitoring=monitoring or LoggingMonitoring(),
            sleep=sleep,
        )
