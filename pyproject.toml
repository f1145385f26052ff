[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "tdslite"
version = "0.1.0"
description = "A small pure-Python client for the Tabular Data Stream (TDS) protocol"
requires-python = ">=3.10"
dependencies = []
keywords = ["tds", "mssql", "sql server", "database", "protocol"]
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
    "Topic :: Database :: Front-Ends",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
tdslite = "tdslite.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["tdslite"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"
