from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass

import httpx
import structlog


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ProbeResult:
    domain: str
    up: bool
    status_code: int | None = None
    error: str | None = None
    elapsed_ms: float | None = None

    @property
    def value(self) -> float:
        return 1.0 if self.up else 0.0


def probe_url(domain: str) -> str:
    return f"https://{domain}"


def build_probe_client(
    *,
    timeout_seconds: float,
    verify_tls: bool = True,
    max_redirects: int = 5,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout_seconds),
        verify=verify_tls,
        follow_redirects=True,
        max_redirects=max_redirects,
        transport=transport,
    )


async def probe_domain(
    domain: str,
    client: httpx.AsyncClient,
    *,
    timeout_seconds: float = 10.0,
) -> ProbeResult:
    """
    One GET against ``https://<domain>``. Up only for status 200; every other
    status, transport error or timeout is Down. Never raises for network
    failures and never retries.
    """
    started = time.perf_counter()
    try:
        resp = await asyncio.wait_for(client.get(probe_url(domain)), timeout=timeout_seconds)
    except asyncio.TimeoutError:
        elapsed_ms = (time.perf_counter() - started) * 1000.0
        logger.warning("Probe timed out", domain=domain, timeout_seconds=timeout_seconds)
        return ProbeResult(domain=domain, up=False, error="timeout", elapsed_ms=round(elapsed_ms, 3))
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        elapsed_ms = (time.perf_counter() - started) * 1000.0
        error = f"http_error: {type(e).__name__}: {e}"
        logger.warning("Error making HTTPS request", domain=domain, error=error)
        return ProbeResult(domain=domain, up=False, error=error, elapsed_ms=round(elapsed_ms, 3))

    elapsed_ms = (time.perf_counter() - started) * 1000.0
    up = resp.status_code == 200
    log = logger.info if up else logger.warning
    log("Probe returned status code", domain=domain, status_code=resp.status_code)
    return ProbeResult(domain=domain, up=up, status_code=resp.status_code, elapsed_ms=round(elapsed_ms, 3))


class ProbeDispatcher:
    """Runs probes through a shared client, at most ``concurrency`` at a time."""

    def __init__(self, client: httpx.AsyncClient, *, timeout_seconds: float, concurrency: int = 50) -> None:
        self.client = client
        self.timeout_seconds = float(timeout_seconds)
        self._sem = asyncio.Semaphore(max(1, int(concurrency)))

    async def probe(self, domain: str, *, deadline: float | None = None) -> ProbeResult | None:
        """
        Check ``domain`` once a slot is free.

        ``deadline`` is an event-loop time; if no slot frees up before it the
        request is never sent and None is returned. A request that has started
        always runs to completion.
        """
        if deadline is None:
            await self._sem.acquire()
        else:
            remaining = deadline - asyncio.get_running_loop().time()
            if remaining <= 0:
                return None
            try:
                await asyncio.wait_for(self._sem.acquire(), timeout=remaining)
            except asyncio.TimeoutError:
                logger.debug("No free slot before the deadline", domain=domain)
                return None
        try:
            return await probe_domain(domain, self.client, timeout_seconds=self.timeout_seconds)
        finally:
            self._sem.release()

    async def aclose(self) -> None:
        await self.client.aclose()
