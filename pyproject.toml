[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "lwserver"
version = "0.1.0"
description = "Server-side building blocks for a VPN: client IP pools, connection maps, session statistics, metrics and control-message buffers"
requires-python = ">=3.10"
dependencies = []
keywords = ["vpn", "ip-pool", "networking", "metrics", "udp", "cmsg", "pktinfo"]
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
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["lwserver"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
