[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "managed-upgrade"
version = "0.1.0"
description = "Cluster upgrade helpers: node cordon checks, time-based node drain strategies, Alertmanager maintenance silences and upgrade notifications"
requires-python = ">=3.10"
keywords = ["kubernetes", "openshift", "upgrade", "drain", "alertmanager", "maintenance"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Systems Administration",
]
dependencies = []

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["managed_upgrade"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
