import logging

import pytest

from otelcol_operator.collector import (
    CollectorSpec,
    OpenTelemetryCollector,
    UpgradeStrategy,
)
from otelcol_operator.upgrade import (
    VERSIONS,
    CollectorClient,
    VersionUpgrade,
    latest,
)
from otelcol_operator.upgrade_support import (
    EventRecorder,
    UpgradeError,
    config_from_string,
)

MANAGED = {"app.kubernetes.io/managed-by": "opentelemetry-operator"}


def make_otelcol(**spec_fields):
    return OpenTelemetryCollector(
        name="my-instance",
        namespace="default",
        labels=dict(MANAGED),
        spec=CollectorSpec(**spec_fields),
    )


def test_latest_version_is_0_43_0():
    assert str(latest()) == "0.43.0"
    assert latest() is VERSIONS[-1]


def test_versions_are_strictly_increasing_up_to_latest():
    ordered = [entry.version for entry in VERSIONS]
    assert ordered == sorted(ordered)
    assert len(set(str(v) for v in ordered)) == len(ordered)
    assert latest().version == max(ordered)


@pytest.mark.parametrize(
    ("strategy", "expected"),
    [
        (UpgradeStrategy.AUTOMATIC, str(latest())),
        (UpgradeStrategy.NONE, "0.0.1"),
    ],
)
def test_managed_instances_follow_upgrade_strategy(strategy, expected):
    existing = make_otelcol(upgrade_strategy=strategy)
    existing.status.version = "0.0.1"
    client = CollectorClient([existing])
    up = VersionUpgrade(version=str(latest()), client=client, recorder=EventRecorder())

    up.managed_instances()

    persisted = client.instances[("default", "my-instance")]
    assert persisted.status.version == expected


def test_managed_instances_ignores_unmanaged():
    existing = make_otelcol()
    existing.labels = {}
    existing.status.version = "0.0.1"
    client = CollectorClient([existing])
    up = VersionUpgrade(client=client)

    up.managed_instances()

    assert client.instances[("default", "my-instance")].status.version == "0.0.1"


def test_managed_instances_logs_when_nothing_to_upgrade(caplog):
    up = VersionUpgrade(client=CollectorClient())
    with caplog.at_level(logging.INFO):
        up.managed_instances()
    assert "no instances to upgrade" in caplog.text


def test_managed_instances_skips_failing_instance():
    existing = make_otelcol()
    existing.status.version = "unparseable"
    client = CollectorClient([existing])
    VersionUpgrade(client=client).managed_instances()
    assert client.instances[("default", "my-instance")].status.version == "unparseable"


def test_managed_instances_without_client_raises():
    with pytest.raises(UpgradeError, match="failed to list"):
        VersionUpgrade().managed_instances()


def test_managed_instances_persists_spec_and_status():
    config = """exporters:
  opencensus:
    reconnection_delay: 15
    num_workers: 4
"""
    existing = make_otelcol(config=config, args={"--new-metrics": "true", "--x": "y"})
    existing.status.version = "0.8.0"
    client = CollectorClient([existing])

    VersionUpgrade(version=str(latest()), client=client).managed_instances()

    stored = client.instances[("default", "my-instance")]
    assert stored.spec.args == {"--x": "y"}
    assert config_from_string(stored.spec.config) == {
        "exporters": {"opencensus": {"num_workers": 4}}
    }
    assert stored.status.version == str(latest())


def test_upgrade_up_to_latest_known_version():
    existing = make_otelcol()
    existing.status.version = "0.8.0"
    up = VersionUpgrade(version="0.10.0")

    res = up.managed_instance(existing)

    assert res.status.version == "0.10.0"


@pytest.mark.parametrize(
    ("given", "expected"),
    [("", ""), ("100.0.0", "100.0.0")],
)
def test_versions_should_not_be_changed(given, expected):
    existing = make_otelcol()
    existing.status.version = given
    up = VersionUpgrade(version=str(latest()))

    res = up.managed_instance(existing)

    assert res.status.version == expected


def test_unparseable_version_raises_and_leaves_instance_alone():
    existing = make_otelcol()
    existing.status.version = "unparseable"
    up = VersionUpgrade(version=str(latest()))

    with pytest.raises(UpgradeError):
        up.managed_instance(existing)
    assert existing.status.version == "unparseable"


def test_remove_metrics_type_flags():
    existing = make_otelcol(args={"--new-metrics": "true", "--legacy-metrics": "true"})
    existing.status.version = "0.9.0"
    recorder = EventRecorder()
    up = VersionUpgrade(recorder=recorder)

    res = up.managed_instance(existing)

    assert "--new-metrics" not in res.spec.args
    assert "--legacy-metrics" not in res.spec.args
    assert any(
        e.message == "upgrade to v0.15.0 dropped the deprecated metrics arguments"
        for e in recorder.events
    )


def test_remove_queued_retry_processor():
    config = """processors:
  queued_retry:
  otherprocessor:
  queued_retry/second:
    compression: "on"
    reconnection_delay: 15
    num_workers: 123"""
    existing = make_otelcol(config=config)
    existing.status.version = "0.18.0"
    assert "queued_retry/second" in existing.spec.config
    assert "num_workers: 123" in existing.spec.config

    res = VersionUpgrade().managed_instance(existing)

    assert "queued_retry:" not in res.spec.config
    assert "otherprocessor:" in res.spec.config
    assert "queued_retry/second:" not in res.spec.config
    assert "num_workers: 123" not in res.spec.config


def test_migrate_resource_type():
    config = """processors:
  resource:
    type: some-type
"""
    existing = make_otelcol(config=config)
    existing.status.version = "0.18.0"

    res = VersionUpgrade().managed_instance(existing)

    assert res.spec.config == """processors:
  resource:
    attributes:
    - action: upsert
      key: opencensus.type
      value: some-type
"""


def test_migrate_labels():
    config = """processors:
  resource:
    labels:
      cloud.zone: zone-1
      host.name: k8s-node
"""
    existing = make_otelcol(config=config)
    existing.status.version = "0.18.0"

    res = VersionUpgrade().managed_instance(existing)

    actual = config_from_string(res.spec.config)
    processor = actual["processors"]["resource"]
    assert len(processor["attributes"]) == 2
    assert processor.get("labels") is None


def test_final_version_is_set_after_steps():
    existing = make_otelcol()
    existing.status.version = "0.40.0"

    res = VersionUpgrade(version="0.44.0").managed_instance(existing)

    assert res.status.version == "0.44.0"