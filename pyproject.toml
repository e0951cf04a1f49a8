[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "plugshm"
version = "0.1.0"
description = "IPC building blocks: buffer slices, linked buffers, session configuration, blocking socket I/O and a selector-based event dispatcher"
requires-python = ">=3.10"
dependencies = []
keywords = ["ipc", "shared-memory", "buffer", "zero-copy", "selectors", "plugin"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["plugshm"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
