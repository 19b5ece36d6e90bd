from __future__ import annotations

import logging
from pathlib import Path

import httpx
import pytest
import structlog
from prometheus_client import CollectorRegistry

from ingressroute_exporter import cli
from ingressroute_exporter.cli import configure_logging
from ingressroute_exporter.config import ExporterConfig
from ingressroute_exporter.cycle import CycleScheduler
from ingressroute_exporter.kube import KubeConfigError
from ingressroute_exporter.probe import ProbeDispatcher, build_probe_client
from ingressroute_exporter.reconciler import MetricReconciler, build_tenant_up_gauge


class _OneDomainEnumerator:
    async def list_namespaces(self) -> list[str] | None:
        return ["tenants"]

    async def discover_namespace(self, namespace: str) -> list[str]:
        return ["a.example.com/x"]


@pytest.fixture(autouse=True)
def _isolated_cwd(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("EXPORTER_CONFIG", raising=False)
    # Cached structlog loggers would keep pointing at this test's captured stdout.
    monkeypatch.setattr(cli, "configure_logging", lambda *args, **kwargs: None)


def test_configure_logging_sets_level_filter() -> None:
    try:
        configure_logging("warning", "json")
        cfg = structlog.get_config()
        assert cfg["cache_logger_on_first_use"] is True
        assert isinstance(cfg["processors"][-1], structlog.processors.JSONRenderer)
        assert logging.getLogger("httpx").level == logging.WARNING
    finally:
        structlog.reset_defaults()


def test_root_command_prints_help(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main([]) == 0
    out = capsys.readouterr().out
    assert "start" in out


def test_start_help_lists_flags(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as exc:
        cli.main(["start", "--help"])
    assert exc.value.code == 0
    out = capsys.readouterr().out
    assert "--listen-port" in out
    assert "--once" in out


def test_start_without_cluster_credentials_exits_1(monkeypatch: pytest.MonkeyPatch) -> None:
    def no_credentials(kubeconfig=None):
        raise KubeConfigError("no config")

    monkeypatch.setattr(cli, "load_kube_clients", no_credentials)
    monkeypatch.setattr(cli.uvicorn, "run", lambda *a, **kw: pytest.fail("server must not start"))

    assert cli.main(["start"]) == 1


def test_start_with_invalid_config_exits_2(tmp_path: Path) -> None:
    path = tmp_path / "bad.yaml"
    path.write_text("listen_port: not-a-port\n", encoding="utf-8")
    assert cli.main(["start", "--config", str(path)]) == 2


def test_start_once_prints_exposition(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    def fake_build_scheduler(cfg: ExporterConfig, registry: CollectorRegistry):
        transport = httpx.MockTransport(lambda request: httpx.Response(200))
        prober = ProbeDispatcher(build_probe_client(timeout_seconds=1.0, transport=transport), timeout_seconds=1.0)
        reconciler = MetricReconciler(build_tenant_up_gauge(registry))
        scheduler = CycleScheduler(_OneDomainEnumerator(), prober, reconciler, collection_window_seconds=2.0)
        return scheduler, prober

    monkeypatch.setattr(cli, "build_scheduler", fake_build_scheduler)

    assert cli.main(["start", "--once"]) == 0
    out = capsys.readouterr().out
    assert 'tenant_up{domain="a.example.com/x"} 1.0' in out


def test_start_serves_with_cli_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    served: dict = {}

    def fake_build_scheduler(cfg: ExporterConfig, registry: CollectorRegistry):
        prober = ProbeDispatcher(build_probe_client(timeout_seconds=1.0), timeout_seconds=1.0)
        reconciler = MetricReconciler(build_tenant_up_gauge(registry))
        return CycleScheduler(_OneDomainEnumerator(), prober, reconciler), prober

    def fake_run(app, **kwargs):
        served["app"] = app
        served.update(kwargs)

    monkeypatch.setattr(cli, "build_scheduler", fake_build_scheduler)
    monkeypatch.setattr(cli.uvicorn, "run", fake_run)

    assert cli.main(["start", "--listen-host", "127.0.0.1", "--listen-port", "9099", "--log-level", "debug"]) == 0
    assert served["host"] == "127.0.0.1"
    assert served["port"] == 9099
    assert served["log_level"] == "debug"
    assert any(getattr(route, "path", None) == "/metrics" for route in served["app"].routes)
