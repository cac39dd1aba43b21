[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "zeekhunt"
version = "0.1.0"
description = "Read Zeek/Bro network logs, filter them and aggregate hosts, connections, DNS, HTTP and TLS activity for threat hunting."
requires-python = ">=3.10"
dependencies = []
keywords = [
    "zeek",
    "bro",
    "network-security",
    "threat-hunting",
    "log-parsing",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Information Technology",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking :: Monitoring",
    "Topic :: Security",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["zeekhunt"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
