from __future__ import annotations

import asyncio
from typing import Iterable

import structlog
from prometheus_client import CollectorRegistry, Gauge

from ingressroute_exporter.probe import ProbeResult


logger = structlog.get_logger(__name__)

TENANT_UP_METRIC = "tenant_up"


def build_tenant_up_gauge(registry: CollectorRegistry) -> Gauge:
    return Gauge(
        TENANT_UP_METRIC,
        "Tenant availability status (1 = up, 0 = down)",
        ["domain"],
        registry=registry,
    )


class MetricReconciler:
    """
    Owns the set of domains currently exported as ``tenant_up`` series and
    keeps it in step with the gauge.

    Results are accepted only for the open cycle. Once ``reconcile`` closes a
    cycle, stragglers from it are dropped, so a slow probe cannot resurrect a
    series that was just pruned.
    """

    def __init__(self, gauge: Gauge) -> None:
        self._gauge = gauge
        self._registry: set[str] = set()
        self._lock = asyncio.Lock()
        self._cycle_id = 0
        self._cycle_open = False

    @property
    def domains(self) -> list[str]:
        return sorted(self._registry)

    @property
    def current_cycle(self) -> int:
        return self._cycle_id

    async def begin_cycle(self) -> int:
        async with self._lock:
            self._cycle_id += 1
            self._cycle_open = True
            return self._cycle_id

    async def record(self, cycle_id: int, result: ProbeResult) -> bool:
        async with self._lock:
            if not self._cycle_open or cycle_id != self._cycle_id:
                logger.warning(
                    "Dropping probe result that arrived after its cycle closed",
                    domain=result.domain,
                    cycle_id=cycle_id,
                    current_cycle=self._cycle_id,
                )
                return False
            self._gauge.labels(domain=result.domain).set(result.value)
            self._registry.add(result.domain)
            return True

    async def reconcile(self, cycle_id: int, discovered: Iterable[str]) -> set[str]:
        """Close ``cycle_id`` and remove every series not in ``discovered``."""
        discovered_set = set(discovered)
        async with self._lock:
            if cycle_id == self._cycle_id:
                self._cycle_open = False
            stale = self._registry - discovered_set
            for domain in stale:
                self._gauge.remove(domain)
                self._registry.discard(domain)
        if stale:
            logger.info("Removed stale domains", cycle_id=cycle_id, domains=sorted(stale))
        return stale

    async def close_cycle(self, cycle_id: int) -> None:
        """Close ``cycle_id`` without pruning anything."""
        async with self._lock:
            if cycle_id == self._cycle_id:
                self._cycle_open = False
