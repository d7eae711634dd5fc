[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "otelcol-operator"
version = "0.1.0"
description = "Collector resource helpers and version upgrade routines for OpenTelemetry Collector custom resources"
requires-python = ">=3.10"
dependencies = [
    "pyyaml",
    "semver",
]
keywords = ["opentelemetry", "collector", "kubernetes", "operator", "upgrade"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Systems Administration",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["otelcol_operator"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
