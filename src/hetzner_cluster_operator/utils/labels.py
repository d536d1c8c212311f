"""Ownership labels attached to every Hetzner resource a cluster manages."""

from __future__ import annotations

from ..constants import CLUSTER_TAG_KEY_PREFIX, RESOURCE_LIFECYCLE_OWNED


def cluster_tag_key(cluster_name: str) -> str:
    """Return the label key that scopes Hetzner resources to one cluster."""
    return f"{CLUSTER_TAG_KEY_PREFIX}{cluster_name}"


def owned_labels(cluster_name: str) -> dict[str, str]:
    """Return the label set marking a resource as owned by the cluster."""
    return {cluster_tag_key(cluster_name): RESOURCE_LIFECYCLE_OWNED}


def label_selector(labels: dict[str, str]) -> str:
    """Render labels as a Hetzner API label selector (``k1=v1,k2=v2``)."""
    return ",".join(f"{key}={value}" for key, value in sorted(labels.items()))


def owned_selector(cluster_name: str) -> str:
    """Label selector matching resources owned by the cluster."""
    return label_selector(owned_labels(cluster_name))


def is_owned(labels: dict[str, str] | None, cluster_name: str) -> bool:
    """Check ownership by exact key and value.

    A key that merely starts with the cluster tag key (e.g. ``key + "s"``)
    does not count.
    """
    if not labels:
        return False
    return labels.get(cluster_tag_key(cluster_name)) == RESOURCE_LIFECYCLE_OWNED


def owned_by_other_cluster(labels: dict[str, str] | None, cluster_name: str) -> bool:
    """Check whether the labels carry another cluster's ownership key."""
    if not labels:
        return False
    own_key = cluster_tag_key(cluster_name)
    return any(key.startswith(CLUSTER_TAG_KEY_PREFIX) and key != own_key for key in labels)


def without_ownership(labels: dict[str, str] | None, cluster_name: str) -> dict[str, str]:
    """Return a copy of the labels with this cluster's ownership label removed."""
    result = dict(labels or {})
    result.pop(cluster_tag_key(cluster_name), None)
    return result
