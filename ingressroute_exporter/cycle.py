"""Cycle scheduling: enumerate, extract, probe within a window, reconcile."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Optional, Protocol

import structlog

from ingressroute_exporter.probe import ProbeResult
from ingressroute_exporter.reconciler import MetricReconciler


logger = structlog.get_logger(__name__)


class Enumerator(Protocol):
    async def list_namespaces(self) -> list[str] | None: ...

    async def discover_namespace(self, namespace: str) -> list[str]: ...


class Prober(Protocol):
    async def probe(self, domain: str, *, deadline: float | None = None) -> ProbeResult | None: ...


@dataclass(frozen=True)
class CycleReport:
    cycle_id: int
    namespaces: int
    discovered: frozenset[str]
    probed: int
    up: int
    removed: frozenset[str]
    late: int
    skipped: bool
    elapsed_seconds: float
    unstarted: int = 0

    def summary(self) -> dict[str, Any]:
        return {
            "cycle_id": self.cycle_id,
            "namespaces": self.namespaces,
            "discovered": len(self.discovered),
            "probed": self.probed,
            "up": self.up,
            "removed": sorted(self.removed),
            "late": self.late,
            "unstarted": self.unstarted,
            "skipped": self.skipped,
            "elapsed_seconds": self.elapsed_seconds,
        }


class CycleScheduler:
    """Drives discovery cycles back to back until stopped."""

    def __init__(
        self,
        enumerator: Enumerator,
        prober: Prober,
        reconciler: MetricReconciler,
        *,
        collection_window_seconds: float = 30.0,
    ) -> None:
        self.enumerator = enumerator
        self.prober = prober
        self.reconciler = reconciler
        self.collection_window_seconds = float(collection_window_seconds)
        self.last_report: CycleReport | None = None

        self._running = False
        self._task: Optional[asyncio.Task] = None
        # Enumeration and probe tasks of the current cycle, plus probes still in
        # flight from a closed one. Each task drops itself when done.
        self._tasks: set[asyncio.Task] = set()

    async def start(self) -> None:
        """Start the background cycle loop."""
        if self._running:
            logger.warning("Cycle scheduler already running")
            return
        self._running = True
        self._task = asyncio.create_task(self.run_forever())
        logger.info("Cycle scheduler started", collection_window_seconds=self.collection_window_seconds)

    async def stop(self) -> None:
        """Stop the loop; an in-flight cycle and its tasks are cancelled and awaited."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        await self._cancel_tasks()
        logger.info("Cycle scheduler stopped")

    async def _cancel_tasks(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("Cancelled cycle tasks", count=len(tasks))

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def run_forever(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            started = loop.time()
            try:
                self.last_report = await self.run_cycle()
            except Exception:
                logger.exception("Cycle failed")
            # A cycle never takes less than the collection window.
            remaining = self.collection_window_seconds - (loop.time() - started)
            if remaining > 0:
                await asyncio.sleep(remaining)

    async def run_cycle(self) -> CycleReport:
        loop = asyncio.get_running_loop()
        started = time.perf_counter()
        deadline = loop.time() + self.collection_window_seconds
        cycle_id = await self.reconciler.begin_cycle()

        try:
            namespaces = await asyncio.wait_for(self.enumerator.list_namespaces(), timeout=self.collection_window_seconds)
        except asyncio.TimeoutError:
            logger.error("Listing namespaces exceeded the collection window", cycle_id=cycle_id)
            namespaces = None

        if namespaces is None:
            await self.reconciler.close_cycle(cycle_id)
            report = CycleReport(
                cycle_id=cycle_id,
                namespaces=0,
                discovered=frozenset(),
                probed=0,
                up=0,
                removed=frozenset(),
                late=0,
                skipped=True,
                elapsed_seconds=round(time.perf_counter() - started, 3),
            )
            logger.warning("Cycle skipped: namespaces unavailable", **report.summary())
            return report

        queue: asyncio.Queue[str | None] = asyncio.Queue()
        enum_tasks = [self._spawn(self._enumerate(ns, queue)) for ns in namespaces]

        discovered: set[str] = set()
        probe_tasks: list[asyncio.Task] = []
        pending_namespaces = len(enum_tasks)
        while pending_namespaces:
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            try:
                domain = await asyncio.wait_for(queue.get(), timeout=remaining)
            except asyncio.TimeoutError:
                break
            if domain is None:
                pending_namespaces -= 1
                continue
            if domain in discovered:
                continue
            discovered.add(domain)
            probe_tasks.append(self._spawn(self._probe_and_record(cycle_id, domain, deadline)))

        if pending_namespaces:
            logger.warning(
                "Collection window elapsed before all namespaces were enumerated",
                cycle_id=cycle_id,
                pending_namespaces=pending_namespaces,
            )
        for task in enum_tasks:
            if not task.done():
                task.cancel()

        results: list[ProbeResult] = []
        late = 0
        unstarted = 0
        if probe_tasks:
            done, pending = await asyncio.wait(probe_tasks, timeout=max(0.0, deadline - loop.time()))
            for task in done:
                result, recorded = task.result()
                if result is None:
                    unstarted += 1
                elif recorded:
                    results.append(result)
            # Pending tasks stay in self._tasks: requests already sent run to
            # completion, those still waiting for a slot give up at the deadline.
            late = len(pending)
            if late:
                logger.warning("Probes still running when the collection window closed", cycle_id=cycle_id, late=late)
            if unstarted:
                logger.warning("Requests never started within the collection window", cycle_id=cycle_id, unstarted=unstarted)

        removed = await self.reconciler.reconcile(cycle_id, discovered)

        report = CycleReport(
            cycle_id=cycle_id,
            namespaces=len(namespaces),
            discovered=frozenset(discovered),
            probed=len(results),
            up=sum(1 for r in results if r.up),
            removed=frozenset(removed),
            late=late,
            skipped=False,
            elapsed_seconds=round(time.perf_counter() - started, 3),
            unstarted=unstarted,
        )
        logger.info("Cycle complete", **report.summary())
        return report

    async def _enumerate(self, namespace: str, queue: asyncio.Queue) -> None:
        try:
            for domain in await self.enumerator.discover_namespace(namespace):
                queue.put_nowait(domain)
        except Exception:
            logger.exception("Namespace enumeration failed", namespace=namespace)
        finally:
            queue.put_nowait(None)

    async def _probe_and_record(self, cycle_id: int, domain: str, deadline: float) -> tuple[ProbeResult | None, bool]:
        try:
            result = await self.prober.probe(domain, deadline=deadline)
        except Exception as e:
            logger.exception("Probe crashed", domain=domain)
            result = ProbeResult(domain=domain, up=False, error=f"{type(e).__name__}: {e}")
        if result is None:
            return None, False
        recorded = await self.reconciler.record(cycle_id, result)
        return result, recorded
