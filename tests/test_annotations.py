from __future__ import annotations

import pytest

from ingressroute_exporter.annotations import (
    DOMAIN_ANNOTATION,
    PATH_ANNOTATION,
    RoutingResource,
    extract_domain_key,
    extract_domain_keys,
)


@pytest.mark.parametrize(
    ("domain", "path", "expected"),
    [
        ("example.com/", "/foo", "example.com/foo"),
        ("example.com/*", "/", "example.com/"),
        ("example.com", "foo", "example.com/foo"),
        ("example.com", "", "example.com/"),
        ("example.com/*/", "/api/v1", "example.com/api/v1"),
        ("example.com//", "//x", "example.com///x"),
        ("example.com", "/foo/", "example.com/foo/"),
    ],
)
def test_extract_domain_key_canonicalization(domain: str, path: str, expected: str) -> None:
    assert extract_domain_key({DOMAIN_ANNOTATION: domain, PATH_ANNOTATION: path}) == expected


def test_extract_domain_key_requires_both_annotations() -> None:
    assert extract_domain_key({DOMAIN_ANNOTATION: "example.com"}) is None
    assert extract_domain_key({PATH_ANNOTATION: "/foo"}) is None
    assert extract_domain_key({}) is None
    assert extract_domain_key(None) is None


def test_extract_domain_key_ignores_unrelated_annotations() -> None:
    annotations = {
        DOMAIN_ANNOTATION: "a.example.com",
        PATH_ANNOTATION: "/x",
        "kubernetes.io/ingress.class": "traefik",
    }
    assert extract_domain_key(annotations) == "a.example.com/x"


def test_extract_domain_key_is_deterministic() -> None:
    annotations = {DOMAIN_ANNOTATION: "example.com/", PATH_ANNOTATION: "/foo"}
    first = extract_domain_key(annotations)
    assert all(extract_domain_key(dict(annotations)) == first for _ in range(10))
    # Input is left untouched.
    assert annotations == {DOMAIN_ANNOTATION: "example.com/", PATH_ANNOTATION: "/foo"}


def test_routing_resource_from_object_tolerates_missing_metadata() -> None:
    res = RoutingResource.from_object({"metadata": {"name": "r1", "annotations": None}}, namespace="ns")
    assert res == RoutingResource(namespace="ns", name="r1", annotations={})

    res = RoutingResource.from_object({}, namespace="ns")
    assert res.namespace == "ns"
    assert res.annotations == {}


def test_extract_domain_keys_skips_unannotated_and_keeps_collisions() -> None:
    resources = [
        RoutingResource("a", "one", {DOMAIN_ANNOTATION: "x.example.com/", PATH_ANNOTATION: "/p"}),
        RoutingResource("a", "two", {DOMAIN_ANNOTATION: "x.example.com"}),
        RoutingResource("b", "three", {DOMAIN_ANNOTATION: "x.example.com", PATH_ANNOTATION: "p"}),
    ]
    pairs = list(extract_domain_keys(resources))
    assert [(r.name, key) for r, key in pairs] == [("one", "x.example.com/p"), ("three", "x.example.com/p")]
