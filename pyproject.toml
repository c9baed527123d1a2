[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "cnwan-reader"
version = "0.5.0"
description = "Turn services in a registry (AWS Cloud Map, etcd) that carry given metadata keys into create, update and delete events."
requires-python = ">=3.10"
dependencies = [
    "pyyaml",
]
keywords = [
    "service-registry",
    "service-discovery",
    "cloud-map",
    "etcd",
    "sd-wan",
    "events",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Distributed Computing",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
cnwan-reader-version = "cnwan_reader.version:main"

[tool.hatch.build.targets.wheel]
packages = ["cnwan_reader"]

[tool.hatch.build.targets.sdist]
include = [
    "cnwan_reader",
    "tests",
]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
