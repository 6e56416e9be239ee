[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "meshplane"
version = "0.1.0"
description = "Configuration, identity resolution and control-plane delivery logic for a local service-mesh dataplane"
requires-python = ">=3.10"
dependencies = [
    "pyyaml",
]
keywords = [
    "service-mesh",
    "sidecar",
    "control-plane",
    "ext_authz",
    "configuration",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
meshplane = "meshplane.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["meshplane"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP", "SIM"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
