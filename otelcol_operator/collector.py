"""The OpenTelemetry Collector resource and the pod settings derived from it."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

DNS_CLUSTER_FIRST = "ClusterFirst"
DNS_CLUSTER_FIRST_WITH_HOST_NET = "ClusterFirstWithHostNet"

STATEFULSET_MODE = "statefulset"


class UpgradeStrategy(str, Enum):
    """How the operator treats a managed instance when it upgrades."""

    AUTOMATIC = "automatic"
    NONE = "none"


@dataclass
class PersistentVolumeClaim:
    """A volume claim template for collectors run as a stateful set."""

    name: str
    access_modes: list[str] = field(default_factory=lambda: ["ReadWriteOnce"])
    storage: str = "50Mi"


@dataclass
class CollectorSpec:
    """The desired state of a collector instance."""

    mode: str = ""
    host_network: bool = False
    args: dict[str, str] = field(default_factory=dict)
    config: str = ""
    upgrade_strategy: UpgradeStrategy = UpgradeStrategy.AUTOMATIC
    volume_claim_templates: list[PersistentVolumeClaim] = field(default_factory=list)


@dataclass
class CollectorStatus:
    """The observed state of a collector instance."""

    version: str = ""


@dataclass
class OpenTelemetryCollector:
    """A collector custom resource."""

    name: str = ""
    namespace: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    spec: CollectorSpec = field(default_factory=CollectorSpec)
    status: CollectorStatus = field(default_factory=CollectorStatus)


def dns_policy(otelcol: OpenTelemetryCollector) -> str:
    """Return the pod DNS policy suited to the instance's networking."""
    if otelcol.spec.host_network:
        return DNS_CLUSTER_FIRST_WITH_HOST_NET
    return DNS_CLUSTER_FIRST


def volume_claim_templates(otelcol: OpenTelemetryCollector) -> list[PersistentVolumeClaim]:
    """Return the volume claim templates for a stateful-set collector.

    Instances in any other mode get none. A stateful set without claims of
    its own gets a single default claim.
    """
    if otelcol.spec.mode != STATEFULSET_MODE:
        return []
    if otelcol.spec.volume_claim_templates:
        return list(otelcol.spec.volume_claim_templates)
    return [
        PersistentVolumeClaim(
            name="default-volume",
            access_modes=["ReadWriteOnce"],
            storage="50Mi",
        )
    ]