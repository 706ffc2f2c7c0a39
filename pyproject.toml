[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ecmaster"
version = "0.1.0"
description = "EtherCAT master building blocks: protocol types, wire records, EoE fields, timing helpers and a raw-socket frame driver"
requires-python = ">=3.10"
dependencies = []
keywords = ["ethercat", "fieldbus", "industrial", "raw-socket", "realtime"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Manufacturing",
    "Operating System :: POSIX :: Linux",
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
packages = ["ecmaster"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
