"""Bring managed collector instances up to the current collector version."""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field

import semver

from otelcol_operator.collector import OpenTelemetryCollector, UpgradeStrategy
from otelcol_operator.steps_early import (
    upgrade_0_2_10,
    upgrade_0_9_0,
    upgrade_0_15_0,
    upgrade_0_19_0,
    upgrade_0_24_0,
    upgrade_0_31_0,
)
from otelcol_operator.steps_late import (
    upgrade_0_36_0,
    upgrade_0_38_0,
    upgrade_0_39_0,
    upgrade_0_41_0,
    upgrade_0_43_0,
)
from otelcol_operator.upgrade_support import EventRecorder, UpgradeError

RECORD_BUFFER_SIZE = 10

MANAGED_BY_LABELS = {"app.kubernetes.io/managed-by": "opentelemetry-operator"}

UpgradeStep = Callable[[EventRecorder, OpenTelemetryCollector], OpenTelemetryCollector]

_log = logging.getLogger(__name__)


def _parse_version(text: str) -> semver.Version:
    """Parse a version leniently: an optional leading 'v' and optional minor and patch."""
    candidate = text[1:] if text.startswith(("v", "V")) else text
    return semver.Version.parse(candidate, optional_minor_and_patch=True)


@dataclass(frozen=True)
class CollectorVersion:
    """A collector version together with the step that upgrades an instance to it."""

    version: semver.Version
    upgrade: UpgradeStep

    def __str__(self) -> str:
        return str(self.version)


VERSIONS: tuple[CollectorVersion, ...] = tuple(
    CollectorVersion(_parse_version(text), step)
    for text, step in (
        ("0.2.10", upgrade_0_2_10),
        ("0.9.0", upgrade_0_9_0),
        ("0.15.0", upgrade_0_15_0),
        ("0.19.0", upgrade_0_19_0),
        ("0.24.0", upgrade_0_24_0),
        ("0.31.0", upgrade_0_31_0),
        ("0.36.0", upgrade_0_36_0),
        ("0.38.0", upgrade_0_38_0),
        ("0.39.0", upgrade_0_39_0),
        ("0.41.0", upgrade_0_41_0),
        ("0.43.0", upgrade_0_43_0),
    )
)


def latest() -> CollectorVersion:
    """The newest version with an upgrade step; not necessarily the newest known version."""
    return VERSIONS[-1]


class CollectorClient:
    """An in-memory store of collector instances, keyed by namespace and name."""

    def __init__(self, instances: Iterable[OpenTelemetryCollector] = ()) -> None:
        self.instances: dict[tuple[str, str], OpenTelemetryCollector] = {
            (item.namespace, item.name): copy.deepcopy(item) for item in instances
        }

    def list(self, labels: Mapping[str, str]) -> list[OpenTelemetryCollector]:
        """Return copies of the instances carrying all of the given labels."""
        return [
            copy.deepcopy(item)
            for item in self.instances.values()
            if all(item.labels.get(key) == value for key, value in labels.items())
        ]

    def _stored(self, original: OpenTelemetryCollector) -> OpenTelemetryCollector:
        key = (original.namespace, original.name)
        try:
            return self.instances[key]
        except KeyError:
            raise LookupError(
                f"collector {original.namespace}/{original.name} not found"
            ) from None

    def patch(self, original: OpenTelemetryCollector, upgraded: OpenTelemetryCollector) -> None:
        """Store the upgraded resource; the stored status is left as it was."""
        stored = self._stored(original)
        updated = copy.deepcopy(upgraded)
        updated.status = stored.status
        self.instances[(original.namespace, original.name)] = updated

    def patch_status(
        self, original: OpenTelemetryCollector, upgraded: OpenTelemetryCollector
    ) -> None:
        """Store the upgraded status object."""
        stored = self._stored(original)
        stored.status = copy.deepcopy(upgraded.status)


@dataclass
class VersionUpgrade:
    """Upgrades managed collector instances to the given collector version."""

    version: str = field(default_factory=lambda: str(latest()))
    client: CollectorClient | None = None
    recorder: EventRecorder = field(default_factory=EventRecorder)
    logger: logging.Logger = _log

    def managed_instances(self) -> None:
        """Find all instances managed by the operator and upgrade them where needed."""
        self.logger.info("looking for managed instances to upgrade")
        if self.client is None:
            raise UpgradeError("failed to list: no client configured")
        try:
            items = self.client.list(MANAGED_BY_LABELS)
        except Exception as err:
            raise UpgradeError(f"failed to list: {err}") from err

        for original in items:
            where = f"name={original.name} namespace={original.namespace}"
            if original.spec.upgrade_strategy == UpgradeStrategy.NONE:
                self.logger.info("skipping instance upgrade due to UpgradeStrategy (%s)", where)
                continue
            try:
                upgraded = self.managed_instance(original)
            except UpgradeError:
                continue

            if upgraded == original:
                continue

            status = copy.deepcopy(upgraded.status)
            try:
                self.client.patch(original, upgraded)
            except Exception:
                self.logger.exception("failed to apply changes to instance (%s)", where)
                continue

            upgraded.status = status
            try:
                self.client.patch_status(original, upgraded)
            except Exception:
                self.logger.exception(
                    "failed to apply changes to instance's status object (%s)", where
                )
                continue

            self.logger.info("instance upgraded (%s version=%s)", where, upgraded.status.version)

        if not items:
            self.logger.info("no instances to upgrade")

    def managed_instance(self, otelcol: OpenTelemetryCollector) -> OpenTelemetryCollector:
        """Return a copy of the instance brought up to the current version.

        Raises UpgradeError if the instance's version cannot be parsed or a step fails.
        """
        otelcol = copy.deepcopy(otelcol)
        where = f"name={otelcol.name} namespace={otelcol.namespace}"

        # A new instance is assumed to be up to date already.
        if not otelcol.status.version:
            return otelcol

        try:
            instance_version = _parse_version(otelcol.status.version)
        except ValueError as err:
            self.logger.error(
                "failed to parse version for OpenTelemetry Collector instance (%s version=%s)",
                where,
                otelcol.status.version,
            )
            raise UpgradeError(
                f"invalid version {otelcol.status.version!r} for {where}: {err}"
            ) from err

        newest = latest()
        if instance_version > newest.version:
            self.logger.info(
                "skipping upgrade for OpenTelemetry Collector instance, as it's newer than "
                "our latest version (%s version=%s latest=%s)",
                where,
                otelcol.status.version,
                newest,
            )
            return otelcol

        for available in VERSIONS:
            if available.version > instance_version:
                try:
                    upgraded = available.upgrade(self.recorder, otelcol)
                except UpgradeError:
                    self.logger.exception(
                        "failed to upgrade managed otelcol instances (%s)", where
                    )
                    raise
                self.logger.debug("step upgrade (%s version=%s)", where, available)
                upgraded.status.version = str(available)
                otelcol = upgraded

        otelcol.status.version = self.version
        self.logger.debug("final version (%s version=%s)", where, otelcol.status.version)
        return otelcol