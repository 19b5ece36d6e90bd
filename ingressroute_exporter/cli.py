from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Any

import structlog
import uvicorn
from prometheus_client import CollectorRegistry, generate_latest
from pydantic import ValidationError

from ingressroute_exporter.config import ConfigError, ExporterConfig, load_config
from ingressroute_exporter.cycle import CycleScheduler
from ingressroute_exporter.discovery import ResourceEnumerator
from ingressroute_exporter.kube import KubeConfigError, load_kube_clients
from ingressroute_exporter.probe import ProbeDispatcher, build_probe_client
from ingressroute_exporter.reconciler import MetricReconciler, build_tenant_up_gauge
from ingressroute_exporter.server import create_app


logger = structlog.get_logger(__name__)

_UVICORN_LEVELS = {"critical", "error", "warning", "info", "debug"}


def configure_logging(log_level: str = "INFO", log_format: str = "console") -> None:
    level = getattr(logging, str(log_level).upper(), logging.INFO)
    processors: list[Any] = [
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="ISO"),
    ]
    if str(log_format).lower() == "json":
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    for name in ("httpx", "httpcore", "kubernetes", "urllib3"):
        logging.getLogger(name).setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="traefik-ingressroute-exporter",
        description="Get IngressRoute CRDs, look for some annotations and check HTTP status from domains.",
    )
    subparsers = parser.add_subparsers(dest="command")

    start = subparsers.add_parser("start", help="Start the server.")
    start.add_argument("--config", default=None, help="Path to YAML config")
    start.add_argument("--listen-host", default=None, help="Address the metrics server binds to")
    start.add_argument("--listen-port", type=int, default=None, help="Port the metrics server binds to")
    start.add_argument("--log-level", default=None, help="Logging level (INFO, WARNING, ...)")
    start.add_argument("--log-format", choices=["console", "json"], default=None, help="Log renderer")
    start.add_argument(
        "--once",
        action="store_true",
        help="Run one discovery cycle, print the metrics exposition and exit",
    )
    return parser


def _apply_overrides(cfg: ExporterConfig, args: argparse.Namespace) -> ExporterConfig:
    overrides = {
        "listen_host": args.listen_host,
        "listen_port": args.listen_port,
        "log_level": args.log_level,
        "log_format": args.log_format,
    }
    return ExporterConfig(**{**cfg.model_dump(), **{k: v for k, v in overrides.items() if v is not None}})


def build_scheduler(cfg: ExporterConfig, registry: CollectorRegistry) -> tuple[CycleScheduler, ProbeDispatcher]:
    clients = load_kube_clients(cfg.kubeconfig)
    enumerator = ResourceEnumerator(
        clients,
        group=cfg.resource_group,
        version=cfg.resource_version,
        plural=cfg.resource_plural,
        concurrency=cfg.enumeration_concurrency,
    )
    prober = ProbeDispatcher(
        build_probe_client(
            timeout_seconds=cfg.probe_timeout_seconds,
            verify_tls=cfg.probe_verify_tls,
            max_redirects=cfg.probe_max_redirects,
        ),
        timeout_seconds=cfg.probe_timeout_seconds,
        concurrency=cfg.probe_concurrency,
    )
    reconciler = MetricReconciler(build_tenant_up_gauge(registry))
    scheduler = CycleScheduler(
        enumerator,
        prober,
        reconciler,
        collection_window_seconds=cfg.collection_window_seconds,
    )
    return scheduler, prober


async def _run_once(scheduler: CycleScheduler, prober: ProbeDispatcher, registry: CollectorRegistry) -> int:
    try:
        await scheduler.run_cycle()
    finally:
        await scheduler.stop()
        await prober.aclose()
    sys.stdout.write(generate_latest(registry).decode("utf-8"))
    return 0


def run_start(args: argparse.Namespace) -> int:
    try:
        cfg = _apply_overrides(load_config(args.config), args)
    except (ConfigError, ValidationError) as e:
        logger.error("Invalid configuration", error=str(e))
        return 2

    configure_logging(cfg.log_level, cfg.log_format)

    registry = CollectorRegistry()
    try:
        scheduler, prober = build_scheduler(cfg, registry)
    except KubeConfigError as e:
        logger.error("Cluster client bootstrap failed", error=str(e))
        return 1

    if args.once:
        return asyncio.run(_run_once(scheduler, prober, registry))

    app = create_app(scheduler, registry, on_shutdown=prober.aclose)
    logger.info("Server listening", url=f"http://{cfg.listen_host}:{cfg.listen_port}/metrics")
    uvicorn_level = cfg.log_level.lower()
    uvicorn.run(
        app,
        host=cfg.listen_host,
        port=cfg.listen_port,
        log_level=uvicorn_level if uvicorn_level in _UVICORN_LEVELS else "info",
    )
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "start":
        return run_start(args)
    parser.print_help()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
