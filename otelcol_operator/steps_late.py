"""Upgrade steps for collector versions from 0.36.0 to 0.43.0."""

from __future__ import annotations

from typing import Any

import yaml

from otelcol_operator.collector import OpenTelemetryCollector
from otelcol_operator.upgrade_support import (
    EventRecorder,
    UpgradeError,
    config_from_string,
    config_to_string,
    update_config,
)

_EXPORTER_TLS_KEYS = frozenset(
    {
        "ca_file",
        "cert_file",
        "key_file",
        "min_version",
        "max_version",
        "insecure",
        "insecure_skip_verify",
        "server_name_override",
    }
)

_LOGGING_ARGS = ("--log-level", "--log-profile", "--log-format")
_METRICS_ARGS = ("--metrics-addr", "--metrics-level")


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


def _ensure_mapping(parent: dict, key: str) -> dict:
    """Return parent[key] as a mapping, replacing it with an empty one if it is not."""
    value = parent.get(key)
    if not isinstance(value, dict):
        value = {}
        parent[key] = value
    return value


def _pop_args(otelcol: OpenTelemetryCollector, names: tuple[str, ...]) -> dict[str, str]:
    found = {name: otelcol.spec.args.pop(name) for name in names if name in otelcol.spec.args}
    return found


def _telemetry_section(cfg: dict, section: str) -> dict:
    service = _ensure_mapping(cfg, "service")
    telemetry = _ensure_mapping(service, "telemetry")
    return _ensure_mapping(telemetry, section)


def _key_list(found: dict[str, str]) -> str:
    return "[" + " ".join(sorted(found)) + "]"


def upgrade_0_36_0(recorder: EventRecorder, otelcol: OpenTelemetryCollector) -> OpenTelemetryCollector:
    """Rename tls_settings to tls in otlp receivers and group tls options of otlp exporters."""
    if not otelcol.spec.config:
        return otelcol

    cfg = _parse(otelcol, "0.36.0")

    receivers = cfg.get("receivers")
    if not isinstance(receivers, dict):
        return otelcol

    for receiver_name, receiver in receivers.items():
        if not str(receiver_name).startswith("otlp"):
            continue
        if not isinstance(receiver, dict):
            return otelcol
        for field_name, protocols in receiver.items():
            if field_name != "protocols":
                continue
            if not isinstance(protocols, dict):
                return otelcol
            for protocol_name, protocol in protocols.items():
                if protocol_name not in ("grpc", "http"):
                    continue
                if not isinstance(protocol, dict):
                    return otelcol
                if "tls_settings" in protocol:
                    protocol["tls"] = protocol.pop("tls_settings")
                    _record(
                        recorder,
                        "upgrade to v0.36.0 has changed the tls_settings field name to tls "
                        f"in {protocol_name} protocol of {receiver_name} receiver",
                    )
    cfg["receivers"] = receivers

    exporters = cfg.get("exporters")
    if not isinstance(exporters, dict):
        return otelcol

    for exporter_name, exporter in exporters.items():
        if not str(exporter_name).startswith("otlp"):
            continue
        if not isinstance(exporter, dict):
            return otelcol
        tls_config: dict[Any, Any] = {}
        for key, value in list(exporter.items()):
            if key in _EXPORTER_TLS_KEYS:
                tls_config[key] = value
                del exporter[key]
            exporter["tls"] = tls_config
            _record(
                recorder,
                "upgrade to v0.36.0 move tls config i.e. ca_file, key_file, cert_file, "
                f"min_version, max_version to tls.* in {exporter_name} exporter",
            )
    cfg["exporters"] = exporters

    return _write(otelcol, cfg, "0.36.0")


def upgrade_0_38_0(recorder: EventRecorder, otelcol: OpenTelemetryCollector) -> OpenTelemetryCollector:
    """Move the deprecated logging arguments into service.telemetry.logs."""
    if not otelcol.spec.args:
        return otelcol

    found = _pop_args(otelcol, _LOGGING_ARGS)
    if not found:
        return otelcol

    cfg = _parse(otelcol, "0.38.0")
    logs = _telemetry_section(cfg, "logs")

    # Settings already in the configuration win over the deprecated arguments.
    if not logs:
        if "--log-level" in found:
            logs["level"] = found["--log-level"]
        if "--log-profile" in found:
            logs["development"] = True
        if "--log-format" in found:
            logs["encoding"] = found["--log-format"]

    _write(otelcol, cfg, "0.38.0")
    _record(
        recorder,
        "upgrade to v0.38.0 dropped the deprecated logging arguments "
        f"i.e. {_key_list(found)} from otelcol custom resource otelcol.spec.args and adding "
        "them to otelcol.spec.config.service.telemetry.logs, if no logging parameters are "
        "configured already.",
    )
    return otelcol


def upgrade_0_39_0(recorder: EventRecorder, otelcol: OpenTelemetryCollector) -> OpenTelemetryCollector:
    """Drop ballast_size_mib from memory_limiter and rename httpd receivers to apache."""
    cfg = _parse(otelcol, "0.39.0")

    processors = cfg.get("processors")
    if isinstance(processors, dict):
        for name, processor in processors.items():
            if not str(name).startswith("memory_limiter") or not isinstance(processor, dict):
                continue
            if "ballast_size_mib" in processor:
                del processor["ballast_size_mib"]
                _record(
                    recorder,
                    f"upgrade to v0.39.0 has dropped the ballast_size_mib field name from {name} processor",
                )

    otelcol = update_config(otelcol, cfg)

    receivers = cfg.get("receivers")
    if not isinstance(receivers, dict):
        return update_config(otelcol, cfg)

    for name in [k for k in receivers if str(k).startswith("httpd")]:
        apache_name = str(name).replace("httpd", "apache", 1)
        receivers[apache_name] = receivers.pop(name)

        service = cfg.get("service")
        if not isinstance(service, dict):
            return otelcol
        pipelines = service.get("pipelines")
        if not isinstance(pipelines, dict):
            return otelcol

        for pipeline_name, pipeline in pipelines.items():
            if pipeline_name != "metrics":
                continue
            if not isinstance(pipeline, dict):
                return otelcol
            for field_name, receiver_list in pipeline.items():
                if field_name != "receivers":
                    continue
                if not isinstance(receiver_list, list):
                    return otelcol
                for position, entry in enumerate(receiver_list):
                    if str(entry).startswith("httpd"):
                        receiver_list[position] = str(entry).replace("httpd", "apache", 1)
                        _record(
                            recorder,
                            "upgrade to v0.39.0 has dropped the ballast_size_mib field name "
                            f"from {receiver_list[position]} processor",
                        )

    return update_config(otelcol, cfg)


def upgrade_0_41_0(recorder: EventRecorder, otelcol: OpenTelemetryCollector) -> OpenTelemetryCollector:
    """Move the cors_* settings of otlp receivers into a cors section."""
    cfg = _parse(otelcol, "0.41.0")

    receivers = cfg.get("receivers")
    if isinstance(receivers, dict):
        for name, receiver in receivers.items():
            if not str(name).startswith("otlp") or not isinstance(receiver, dict):
                continue
            cors: dict[str, Any] | None = None
            for key in [k for k in receiver if k in ("cors_allowed_origins", "cors_allowed_headers")]:
                if cors is None:
                    cors = {}
                    receiver["cors"] = cors
                cors[key.replace("cors_", "", 1)] = receiver.pop(key)
                _record(
                    recorder,
                    f"upgrade to v0.41.0 has re-structured the {key} inside otlp receiver config "
                    "according to the upstream otlp receiver changes in 0.41.0 release.",
                )

    return update_config(otelcol, cfg)


def upgrade_0_43_0(recorder: EventRecorder, otelcol: OpenTelemetryCollector) -> OpenTelemetryCollector:
    """Move the deprecated metrics arguments into service.telemetry.metrics."""
    if not otelcol.spec.args:
        return otelcol

    found = _pop_args(otelcol, _METRICS_ARGS)
    if not found:
        return otelcol

    cfg = _parse(otelcol, "0.43.0")
    metrics = _telemetry_section(cfg, "metrics")

    # Settings already in the configuration win over the deprecated arguments.
    if not metrics:
        if "--metrics-addr" in found:
            metrics["address"] = found["--metrics-addr"]
        if "--metrics-level" in found:
            metrics["level"] = found["--metrics-level"]

    _write(otelcol, cfg, "0.43.0")
    _record(
        recorder,
        "upgrade to v0.43.0 dropped the deprecated metrics arguments "
        f"i.e. {_key_list(found)} from otelcol custom resource otelcol.spec.args and adding "
        "them to otelcol.spec.config.service.telemetry.metrics, if no metrics arguments are "
        "configured already.",
    )
    return otelcol