# otelcol-operator

Helpers for describing OpenTelemetry Collector custom resources and for
upgrading their collector configuration from older collector releases to
the latest known one.

## Installation

```
pip install .
```

For running the test suite:

```
pip install ".[test]"
pytest
```

## Collector resources

`otelcol_operator.collector` models a collector instance
(`OpenTelemetryCollector`, with its `CollectorSpec` and `CollectorStatus`,
an `UpgradeStrategy` of `automatic` or `none`, and `PersistentVolumeClaim`
templates) and derives pod settings from it:

```python
from otelcol_operator.collector import (
    CollectorSpec,
    OpenTelemetryCollector,
    dns_policy,
    volume_claim_templates,
)

otelcol = OpenTelemetryCollector(spec=CollectorSpec(mode="statefulset"))
dns_policy(otelcol)              # "ClusterFirst", or "ClusterFirstWithHostNet" with host networking
volume_claim_templates(otelcol)  # a single 50Mi "default-volume" claim unless the spec lists its own
```

Volume claim templates are only produced for the `statefulset` mode; any
other mode gets an empty list.

## Upgrading instances

`otelcol_operator.upgrade.VersionUpgrade` brings an instance's
configuration up to date, one collector release at a time, through the
steps listed in `otelcol_operator.upgrade.VERSIONS` (0.2.10 up to 0.43.0;
`latest()` returns the last of them). Each step rewrites deprecated
settings: removed processors and fields, `httpd` receivers renamed to
`apache`, options moved into nested `tls`, `cors` or `service.telemetry`
sections, and deprecated command-line arguments moved into the
configuration. Steps record what they changed as `Event` objects
(`kind`, `reason`, `message`) on an `EventRecorder`, in its `events` list.

```python
from otelcol_operator.collector import CollectorSpec, CollectorStatus, OpenTelemetryCollector
from otelcol_operator.upgrade import VersionUpgrade, latest
from otelcol_operator.upgrade_support import EventRecorder

otelcol = OpenTelemetryCollector(
    spec=CollectorSpec(config="extensions:\n  health_check/3:\n    port: 13133\n"),
    status=CollectorStatus(version="0.23.0"),
)

recorder = EventRecorder()
upgrader = VersionUpgrade(version=str(latest()), recorder=recorder)
upgraded = upgrader.managed_instance(otelcol)
print(upgraded.spec.config)   # health_check/3 now uses endpoint: 0.0.0.0:13133
print(upgraded.status.version)
print(recorder.events)
```

`managed_instance` works on a copy and leaves its argument untouched. It
sets the resulting status version to the `VersionUpgrade`'s `version`.
Instances without a version are treated as new and returned unchanged;
instances newer than `latest()` are returned unchanged; an unparseable
version, or a step that cannot handle the configuration, raises
`otelcol_operator.upgrade_support.UpgradeError`.

Rewritten configurations are emitted as block-style YAML with keys in a
natural sort order (`config_to_string`); `config_from_string` parses a
configuration into a dictionary and raises `ValueError` on bad input.

### Upgrading many instances

`otelcol_operator.upgrade.CollectorClient` is an in-memory store of
instances keyed by namespace and name, with `list(labels)`,
`patch(original, upgraded)` and `patch_status(original, upgraded)`. Give
one to `VersionUpgrade(client=...)` and call `managed_instances()` to
upgrade every instance labelled
`app.kubernetes.io/managed-by: opentelemetry-operator`. Instances whose
upgrade strategy is `UpgradeStrategy.NONE` are skipped, as are instances
whose upgrade fails; changed instances are written back to the store.
Without a client, `managed_instances()` raises `UpgradeError`.

## What this package does not do

It does not talk to a Kubernetes cluster: there is no API client, no
controller loop and no webhook, and the only store of instances is the
in-memory `CollectorClient`. It does not build the collector's
deployments, services, config maps or volumes beyond the DNS policy and
volume claim templates above, and it provides no command-line tool.