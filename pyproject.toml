[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "wifiperf"
version = "0.1.0"
description = "An iperf-style TCP/UDP throughput tester with periodic payload and message clients"
requires-python = ">=3.10"
dependencies = []
keywords = ["iperf", "throughput", "bandwidth", "network", "tcp", "udp", "benchmark"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Benchmark",
    "Topic :: System :: Networking :: Monitoring",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
wifiperf = "wifiperf.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["wifiperf"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
