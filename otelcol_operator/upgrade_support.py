"""Shared pieces of the upgrade routine: errors, events and config handling."""

from __future__ import annotations

import functools
from dataclasses import dataclass, field
from typing import Any

import yaml

from otelcol_operator.collector import OpenTelemetryCollector


class UpgradeError(Exception):
    """Raised when an instance cannot be brought to a newer version."""


@dataclass(frozen=True)
class Event:
    """An event emitted while upgrading an instance."""

    kind: str
    reason: str
    message: str


@dataclass
class EventRecorder:
    """Collects the events emitted during upgrades, in order."""

    events: list[Event] = field(default_factory=list)

    def event(self, kind: str, reason: str, message: str) -> None:
        self.events.append(Event(kind, reason, message))


_DIGITS = "0123456789"


def _numeric(value: Any) -> float | None:
    if isinstance(value, (bool, int, float)):
        return float(value)
    return None


def _kind_rank(value: Any) -> int:
    if isinstance(value, bool):
        return 1
    if isinstance(value, int):
        return 2
    if isinstance(value, float):
        return 14
    if isinstance(value, str):
        return 24
    return 30


def _string_less(a: str, b: str) -> bool:
    for i, (ca, cb) in enumerate(zip(a, b)):
        if ca == cb:
            continue
        a_letter, b_letter = ca.isalpha(), cb.isalpha()
        if a_letter and b_letter:
            return ca < cb
        if a_letter or b_letter:
            return b_letter
        an = bn = 0
        if ca == "0" or cb == "0":
            j = i - 1
            while j >= 0 and a[j] in _DIGITS:
                if a[j] != "0":
                    an = bn = 1
                    break
                j -= 1
        ai = i
        while ai < len(a) and a[ai] in _DIGITS:
            an = an * 10 + int(a[ai])
            ai += 1
        bi = i
        while bi < len(b) and b[bi] in _DIGITS:
            bn = bn * 10 + int(b[bi])
            bi += 1
        if an != bn:
            return an < bn
        if ai != bi:
            return ai < bi
        return ca < cb
    return len(a) < len(b)


def _key_less(a: Any, b: Any) -> bool:
    af, bf = _numeric(a), _numeric(b)
    if af is not None and bf is not None:
        if af != bf:
            return af < bf
        return _kind_rank(a) < _kind_rank(b)
    if not (isinstance(a, str) and isinstance(b, str)):
        ra, rb = _kind_rank(a), _kind_rank(b)
        if ra != rb:
            return ra < rb
        return str(a) < str(b)
    return _string_less(a, b)


def _key_compare(a: Any, b: Any) -> int:
    if _key_less(a, b):
        return -1
    if _key_less(b, a):
        return 1
    return 0


class _ConfigDumper(yaml.SafeDumper):
    """Block-style dumper with natural key order and double-quoted scalars."""

    def choose_scalar_style(self):
        style = super().choose_scalar_style()
        return '"' if style == "'" else style


def _represent_mapping(dumper: _ConfigDumper, data: dict) -> yaml.Node:
    items = sorted(data.items(), key=functools.cmp_to_key(lambda x, y: _key_compare(x[0], y[0])))
    return dumper.represent_mapping("tag:yaml.org,2002:map", items)


_ConfigDumper.add_representer(dict, _represent_mapping)


def config_from_string(text: str) -> dict:
    """Parse a collector configuration into a mapping.

    Raises ValueError if the text is not YAML or not a mapping.
    """
    try:
        cfg = yaml.safe_load(text)
    except yaml.YAMLError as err:
        raise ValueError(f"couldn't parse the configuration: {err}") from err
    if cfg is None:
        return {}
    if not isinstance(cfg, dict):
        raise ValueError(
            f"couldn't parse the configuration: expected a mapping, got {type(cfg).__name__}"
        )
    return cfg


def config_to_string(cfg: dict) -> str:
    """Serialise a configuration mapping as block-style YAML with sorted keys."""
    return yaml.dump(
        cfg,
        Dumper=_ConfigDumper,
        default_flow_style=False,
        sort_keys=False,
        allow_unicode=True,
    )


def update_config(otelcol: OpenTelemetryCollector, cfg: dict) -> OpenTelemetryCollector:
    """Write the configuration back into the instance, dropping null markers."""
    try:
        text = config_to_string(cfg)
    except yaml.YAMLError as err:
        raise UpgradeError(
            f"couldn't upgrade to v0.39.0, failed to marshall back configuration: {err}"
        ) from err
    otelcol.spec.config = text.replace(" null", "")
    return otelcol