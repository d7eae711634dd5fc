"""Upgrade steps for collector versions up to 0.31.0."""

from __future__ import annotations

import json
from typing import Any

import yaml

from otelcol_operator.collector import OpenTelemetryCollector
from otelcol_operator.upgrade_support import (
    EventRecorder,
    UpgradeError,
    config_from_string,
    config_to_string,
)


def _quoted(value: Any) -> str:
    return json.dumps(str(value))


def _parse(otelcol: OpenTelemetryCollector, version: str) -> dict:
    try:
        return config_from_string(otelcol.spec.config)
    except ValueError as err:
        raise UpgradeError(
            f"couldn't upgrade to v{version}, failed to parse configuration: {err}"
        ) from err


def _write(otelcol: OpenTelemetryCollector, cfg: dict, version: str) -> OpenTelemetryCollector:
    try:
        otelcol.spec.config = config_to_string(cfg)
    except yaml.YAMLError as err:
        raise UpgradeError(
            f"couldn't upgrade to v{version}, failed to marshall back configuration: {err}"
        ) from err
    return otelcol


def _record(recorder: EventRecorder, message: str) -> None:
    recorder.event("Normal", "Upgrade", message)


def upgrade_0_2_10(recorder: EventRecorder, otelcol: OpenTelemetryCollector) -> OpenTelemetryCollector:
    """First version under the current collector image; the instance is only checked."""
    if not isinstance(otelcol, OpenTelemetryCollector):
        raise TypeError(
            f"expected an OpenTelemetryCollector, got {type(otelcol).__name__}"
        )
    return otelcol


def upgrade_0_9_0(recorder: EventRecorder, otelcol: OpenTelemetryCollector) -> OpenTelemetryCollector:
    """Drop reconnection_delay from opencensus exporters."""
    if not otelcol.spec.config:
        return otelcol

    cfg = _parse(otelcol, "0.9.0")
    exporters = cfg.get("exporters")
    if not isinstance(exporters, dict):
        raise UpgradeError(
            "couldn't upgrade to v0.9.0, failed to extract list of exporters "
            f"from the configuration: {_quoted(exporters)}"
        )

    for name, exporter in exporters.items():
        # Matches the exporter names that are a prefix of "opencensus".
        if not "opencensus".startswith(str(name)):
            continue
        if isinstance(exporter, dict):
            exporter.pop("reconnection_delay", None)
            _record(
                recorder,
                f"upgrade to v0.9.0 removed the property reconnection_delay for exporter {_quoted(name)}",
            )
        elif isinstance(exporter, str):
            continue
        else:
            raise UpgradeError(
                f"couldn't upgrade to v0.9.0, the exporter {_quoted(name)} is invalid "
                "(neither a string nor map)"
            )

    cfg["exporters"] = exporters
    return _write(otelcol, cfg, "0.9.0")


def upgrade_0_15_0(recorder: EventRecorder, otelcol: OpenTelemetryCollector) -> OpenTelemetryCollector:
    """Drop the deprecated metrics type arguments."""
    otelcol.spec.args.pop("--new-metrics", None)
    otelcol.spec.args.pop("--legacy-metrics", None)
    _record(recorder, "upgrade to v0.15.0 dropped the deprecated metrics arguments")
    return otelcol


def _attributes_error(name: Any, attrs: Any) -> UpgradeError:
    return UpgradeError(
        f"couldn't upgrade to v0.19.0, the attributes list for processors {_quoted(name)} "
        "couldn't be parsed based on the previous value. "
        f"Type: {type(attrs).__name__}, value: {attrs}"
    )


def _migrate_resource(
    recorder: EventRecorder, name: Any, processor: dict
) -> None:
    migrated: list[dict[str, str]] | None = None

    def current_attributes() -> list[dict[str, str]]:
        if "attributes" not in processor:
            return []
        attrs = processor["attributes"]
        if migrated is None or attrs is not migrated:
            raise _attributes_error(name, attrs)
        return attrs

    if "type" in processor:
        attributes = current_attributes()
        attributes.append(
            {"key": "opencensus.type", "value": str(processor["type"]), "action": "upsert"}
        )
        processor["attributes"] = migrated = attributes
        del processor["type"]
        _record(
            recorder,
            f"upgrade to v0.19.0 migrated the property 'type' for processor {_quoted(name)}",
        )

    if "labels" in processor:
        attributes = current_attributes()
        labels = processor["labels"]
        if isinstance(labels, dict):
            attributes.extend(
                {"key": str(key), "value": str(value), "action": "upsert"}
                for key, value in labels.items()
            )
        processor["attributes"] = migrated = attributes
        del processor["labels"]
        _record(
            recorder,
            f"upgrade to v0.19.0 migrated the property 'labels' for processor {_quoted(name)}",
        )


def upgrade_0_19_0(recorder: EventRecorder, otelcol: OpenTelemetryCollector) -> OpenTelemetryCollector:
    """Remove queued_retry processors and migrate resource processor settings."""
    if not otelcol.spec.config:
        return otelcol

    cfg = _parse(otelcol, "0.19.0")
    processors = cfg.get("processors")
    if not isinstance(processors, dict):
        return otelcol

    for name, processor in list(processors.items()):
        key = str(name)
        if key.startswith("queued_retry"):
            del processors[name]
            _record(recorder, f"upgrade to v0.19.0 removed the processor {_quoted(name)}")
            continue

        if key.startswith("resource"):
            if isinstance(processor, dict):
                _migrate_resource(recorder, name, processor)
            elif isinstance(processor, str):
                continue
            else:
                raise UpgradeError(
                    f"couldn't upgrade to v0.19.0, the processor {_quoted(name)} is invalid "
                    "(neither a string nor map)"
                )

    cfg["processors"] = processors
    return _write(otelcol, cfg, "0.19.0")


def upgrade_0_24_0(recorder: EventRecorder, otelcol: OpenTelemetryCollector) -> OpenTelemetryCollector:
    """Turn the health_check extension's port into an endpoint."""
    if not otelcol.spec.config:
        return otelcol

    cfg = _parse(otelcol, "0.24.0")
    extensions = cfg.get("extensions")
    if not isinstance(extensions, dict):
        return otelcol

    for name, extension in extensions.items():
        if not str(name).startswith("health_check"):
            continue
        if isinstance(extension, dict):
            if "port" in extension:
                port = extension.pop("port")
                extension["endpoint"] = f"0.0.0.0:{port}"
                _record(
                    recorder,
                    "upgrade to v0.24.0 migrated the property 'port' to 'endpoint' "
                    f"for extension {_quoted(name)}",
                )
        elif extension is None or isinstance(extension, str):
            continue
        else:
            raise UpgradeError(
                f"couldn't upgrade to v0.24.0, the extension {_quoted(name)} is invalid "
                f"(expected string or map but was {type(extension).__name__})"
            )

    return _write(otelcol, cfg, "0.24.0")


def upgrade_0_31_0(recorder: EventRecorder, otelcol: OpenTelemetryCollector) -> OpenTelemetryCollector:
    """Drop metrics_schema from influxdb receivers."""
    if not otelcol.spec.config:
        return otelcol

    cfg = _parse(otelcol, "0.31.0")
    receivers = cfg.get("receivers")
    if not isinstance(receivers, dict):
        return otelcol

    for name, receiver in receivers.items():
        if not str(name).startswith("influxdb"):
            continue
        if not isinstance(receiver, dict):
            return otelcol
        for field_key in [k for k in receiver if str(k).startswith("metrics_schema")]:
            del receiver[field_key]
            _record(
                recorder,
                f"upgrade to v0.31.0 dropped the 'metrics_schema' field from {_quoted(name)} receiver",
            )

    cfg["receivers"] = receivers
    return _write(otelcol, cfg, "0.31.0")