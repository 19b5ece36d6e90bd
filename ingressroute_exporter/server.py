from __future__ import annotations

from typing import Awaitable, Callable

import structlog
from fastapi import FastAPI
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest

from ingressroute_exporter import __version__
from ingressroute_exporter.cycle import CycleScheduler


logger = structlog.get_logger(__name__)


def create_app(
    scheduler: CycleScheduler,
    registry: CollectorRegistry,
    *,
    run_scheduler: bool = True,
    on_shutdown: Callable[[], Awaitable[None]] | None = None,
) -> FastAPI:
    app = FastAPI(title="Traefik IngressRoute Exporter", version=__version__)
    app.state.scheduler = scheduler
    app.state.registry = registry

    @app.on_event("startup")
    async def _startup() -> None:
        if run_scheduler:
            await scheduler.start()

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        await scheduler.stop()
        if on_shutdown is not None:
            await on_shutdown()
        logger.info("Exporter stopped")

    @app.get("/")
    async def root() -> dict:
        """Health check endpoint."""
        report = scheduler.last_report
        return {
            "status": "healthy",
            "service": "traefik-ingressroute-exporter",
            "domains": len(scheduler.reconciler.domains),
            "last_cycle": report.summary() if report is not None else None,
        }

    @app.get("/metrics", include_in_schema=False)
    async def metrics() -> Response:
        return Response(content=generate_latest(registry), media_type=CONTENT_TYPE_LATEST)

    return app
