from __future__ import annotations

import asyncio
from typing import Any

import structlog

from ingressroute_exporter.annotations import RoutingResource, extract_domain_keys
from ingressroute_exporter.kube import KubeClients


logger = structlog.get_logger(__name__)


class ResourceEnumerator:
    """
    Lists namespaces and the routing resources inside each of them.

    The kubernetes client is synchronous, so every call is pushed to a worker
    thread; ``concurrency`` caps how many namespace listings run at once.
    Failures never raise: they are logged and shrink the cycle's view.
    """

    def __init__(
        self,
        clients: KubeClients,
        *,
        group: str = "traefik.containo.us",
        version: str = "v1alpha1",
        plural: str = "ingressroutes",
        concurrency: int = 10,
    ) -> None:
        self._core_api = clients.core_api
        self._custom_api = clients.custom_api
        self.group = group
        self.version = version
        self.plural = plural
        self._sem = asyncio.Semaphore(max(1, int(concurrency)))

    async def list_namespaces(self) -> list[str] | None:
        """Namespace names, or None when the cluster could not be listed."""
        try:
            response = await asyncio.to_thread(self._core_api.list_namespace)
        except Exception as e:
            logger.error("Error fetching namespaces", error=f"{type(e).__name__}: {e}")
            return None

        names: list[str] = []
        for item in getattr(response, "items", None) or []:
            name = getattr(getattr(item, "metadata", None), "name", None)
            if name:
                names.append(str(name))
        return names

    async def list_routing_resources(self, namespace: str) -> list[RoutingResource]:
        async with self._sem:
            try:
                response: Any = await asyncio.to_thread(
                    self._custom_api.list_namespaced_custom_object,
                    group=self.group,
                    version=self.version,
                    namespace=namespace,
                    plural=self.plural,
                )
            except Exception as e:
                logger.warning(
                    "Error fetching routing resources",
                    namespace=namespace,
                    plural=self.plural,
                    error=f"{type(e).__name__}: {e}",
                )
                return []

        items = response.get("items") if isinstance(response, dict) else None
        if not isinstance(items, list):
            return []
        return [RoutingResource.from_object(obj, namespace=namespace) for obj in items if isinstance(obj, dict)]

    async def discover_namespace(self, namespace: str) -> list[str]:
        """Domain keys declared in one namespace (colliding keys are kept)."""
        resources = await self.list_routing_resources(namespace)
        keys = [key for _, key in extract_domain_keys(resources)]
        logger.info(
            "Domains to scrape in namespace",
            namespace=namespace,
            domains=len(keys),
            ingressroutes=len(resources),
        )
        return keys
