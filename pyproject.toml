[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "telegraf"
version = "0.1.0"
description = "Metric-gathering plugins and an accumulator for system, memcached, redis, mysql and kafka sources"
requires-python = ">=3.10"
keywords = ["metrics", "monitoring", "line-protocol", "plugins", "system-stats"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Monitoring",
]
dependencies = [
    "pymysql",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["telegraf"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
