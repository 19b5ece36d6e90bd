from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog
import yaml
from kubernetes import client, config


logger = structlog.get_logger(__name__)


class KubeConfigError(RuntimeError):
    """No usable cluster credentials were found."""


@dataclass(frozen=True)
class KubeClients:
    core_api: Any
    custom_api: Any


def default_kubeconfig_path() -> str:
    env_path = (os.getenv("KUBECONFIG") or "").strip()
    if env_path:
        return env_path
    return str(Path.home() / ".kube" / "config")


def load_kube_clients(kubeconfig: str | None = None) -> KubeClients:
    """
    In-cluster service-account credentials first, then a local kube-config
    (explicit path, ``$KUBECONFIG`` or ``~/.kube/config``).

    Raises KubeConfigError when neither works; callers treat it as fatal.
    """
    try:
        config.load_incluster_config()
        logger.info("Loaded in-cluster Kubernetes config")
    except config.ConfigException as incluster_exc:
        path = kubeconfig or default_kubeconfig_path()
        try:
            config.load_kube_config(config_file=path)
        except (config.ConfigException, OSError, yaml.YAMLError) as exc:
            raise KubeConfigError(
                f"No Kubernetes config available (in-cluster: {incluster_exc}; kubeconfig {path}: {exc})"
            ) from exc
        logger.info("Loaded kubeconfig", path=path)

    return KubeClients(core_api=client.CoreV1Api(), custom_api=client.CustomObjectsApi())
