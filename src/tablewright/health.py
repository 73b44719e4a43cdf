"""Health signalling for operational tooling.

The coordinator never surfaces a terminal failure to its caller; sustained
trouble with the table store is visible only through the health sink.
"""

from __future__ import annotations

import threading
from enum import Enum
from typing import Protocol, runtime_checkable

from tablewright.observability import get_logger


class Service(str, Enum):
    """Components whose health is reported."""

    TABLE_STORE = "table_store"


@runtime_checkable
class HealthSink(Protocol):
    """Receives liveness signals for named components."""

    def set_healthy(self, component: str) -> None: ...

    def set_unhealthy(self, component: str) -> None: ...


class AppHealth:
    """In-process health registry.

    Tracks the status of each component and logs every transition. A
    component that never reported is considered healthy.

    Example:
        >>> health = AppHealth()
        >>> health.set_unhealthy(Service.TABLE_STORE)
        >>> health.is_healthy
        False
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._unhealthy: set[str] = set()
        self._logger = get_logger()

    def set_healthy(self, component: str) -> None:
        name = _component_name(component)
        with self._lock:
            changed = name in self._unhealthy
            self._unhealthy.discard(name)
        if changed:
            self._logger.info("component_healthy", component=name)

    def set_unhealthy(self, component: str) -> None:
        name = _component_name(component)
        with self._lock:
            changed = name not in self._unhealthy
            self._unhealthy.add(name)
        if changed:
            self._logger.warning("component_unhealthy", component=name)

    @property
    def is_healthy(self) -> bool:
        with self._lock:
            return not self._unhealthy

    @property
    def unhealthy_components(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._unhealthy)


def _component_name(component: str) -> str:
    return component.value if isinstance(component, Enum) else component
