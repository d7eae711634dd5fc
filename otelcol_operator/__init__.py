"""OpenTelemetry Collector resource helpers and step-by-step configuration upgrades."""

__version__ = "0.1.0"