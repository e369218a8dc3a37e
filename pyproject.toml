[build-system]
requires = ["setuptools>=61"]
build-backend = "setuptools.build_meta"

[project]
name = "cactusrt"
version = "0.1.0"
description = "Real-time style thread building blocks, lock-free style helpers and Perfetto-compatible tracing"
requires-python = ">=3.10"
dependencies = []
keywords = ["real-time", "tracing", "perfetto", "threads", "lockless", "scheduling"]
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
    "Topic :: Software Development :: Libraries :: Application Frameworks",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.setuptools]
packages = ["cactusrt"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
