from __future__ import annotations

from typing import Any

import pytest
from prometheus_client import CollectorRegistry

from ingressroute_exporter.annotations import DOMAIN_ANNOTATION, PATH_ANNOTATION
from ingressroute_exporter.reconciler import MetricReconciler, build_tenant_up_gauge


def ingressroute(name: str, *, domain: str | None = None, path: str | None = None) -> dict[str, Any]:
    annotations: dict[str, str] = {}
    if domain is not None:
        annotations[DOMAIN_ANNOTATION] = domain
    if path is not None:
        annotations[PATH_ANNOTATION] = path
    return {"metadata": {"name": name, "annotations": annotations}}


@pytest.fixture
def registry() -> CollectorRegistry:
    # One registry per test so the tenant_up gauge can be registered again.
    return CollectorRegistry()


@pytest.fixture
def reconciler(registry: CollectorRegistry) -> MetricReconciler:
    return MetricReconciler(build_tenant_up_gauge(registry))


@pytest.fixture
def make_ingressroute():
    return ingressroute
