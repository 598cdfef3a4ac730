[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "kiplsm"
version = "0.1.0"
description = "Building blocks of an LSM-tree key-value storage engine: sorted string tables, blocks, bloom filters and caches"
requires-python = ">=3.10"
keywords = ["lsm", "key-value", "storage", "sstable", "bloom-filter", "lru-cache"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Database :: Database Engines/Servers",
]
dependencies = [
    "filelock",
    "lz4",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[tool.hatch.build.targets.wheel]
packages = ["kiplsm"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
