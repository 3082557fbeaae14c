[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "edgecache"
version = "0.1.0"
description = "Core of an edge cache node for a small content delivery network: configuration, storage lookup, freshness validation, origin and parent fetching, header rewriting, event logs and metrics."
requires-python = ">=3.10"
dependencies = []
keywords = ["cdn", "cache", "proxy", "edge", "http", "metrics", "prometheus"]
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
    "Topic :: Internet :: Proxy Servers",
    "Topic :: Internet :: WWW/HTTP",
    "Topic :: System :: Monitoring",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["edgecache"]

[tool.hatch.build.targets.sdist]
include = ["edgecache", "tests", "pyproject.toml"]

[tool.pytest.ini_options]
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
