from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Mapping


ANNOTATION_PREFIX = "traefik-ingressroute-exporter/"
DOMAIN_ANNOTATION = f"{ANNOTATION_PREFIX}domain"
PATH_ANNOTATION = f"{ANNOTATION_PREFIX}path"


@dataclass(frozen=True)
class RoutingResource:
    namespace: str
    name: str
    annotations: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_object(cls, obj: Mapping[str, Any], *, namespace: str = "") -> "RoutingResource":
        """Build from a custom-object dict as returned by the cluster API."""
        metadata = obj.get("metadata") if isinstance(obj, Mapping) else None
        if not isinstance(metadata, Mapping):
            metadata = {}
        raw_annotations = metadata.get("annotations")
        annotations: dict[str, str] = {}
        if isinstance(raw_annotations, Mapping):
            annotations = {str(k): str(v) for k, v in raw_annotations.items() if v is not None}
        return cls(
            namespace=str(metadata.get("namespace") or namespace),
            name=str(metadata.get("name") or ""),
            annotations=annotations,
        )


def _strip_suffix(value: str, suffix: str) -> str:
    if value.endswith(suffix):
        return value[: -len(suffix)]
    return value


def _strip_prefix(value: str, prefix: str) -> str:
    if value.startswith(prefix):
        return value[len(prefix) :]
    return value


def extract_domain_key(annotations: Mapping[str, str] | None) -> str | None:
    """
    Canonical ``host/path`` key for a routing resource, or None when either
    of the two exporter annotations is missing.

    The order matters: the trailing slash goes first, so ``example.com/*/``
    loses both the slash and the wildcard, while ``example.com/*`` only loses
    the wildcard.
    """
    if not annotations:
        return None
    if DOMAIN_ANNOTATION not in annotations or PATH_ANNOTATION not in annotations:
        return None

    domain = str(annotations[DOMAIN_ANNOTATION])
    path = str(annotations[PATH_ANNOTATION])

    domain = _strip_suffix(domain, "/")
    domain = _strip_suffix(domain, "/*")
    path = _strip_prefix(path, "/")
    return f"{domain}/{path}"


def extract_domain_keys(resources: Iterable[RoutingResource]) -> Iterator[tuple[RoutingResource, str]]:
    for resource in resources:
        key = extract_domain_key(resource.annotations)
        if key is not None:
            yield resource, key
