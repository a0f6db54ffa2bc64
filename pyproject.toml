[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "orderinfo"
version = "0.1.0"
description = "Order information service: a JSON HTTP API over orders kept in a SQL database and cached in Redis, with handlers for order events"
requires-python = ">=3.10"
keywords = ["orders", "http", "redis", "cache", "events", "sqlalchemy", "flask"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: Flask",
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
    "Topic :: Database :: Front-Ends",
]
dependencies = [
    "pyyaml>=6.0",
    "redis>=4.5",
    "sqlalchemy>=2.0",
    "flask>=2.3",
]

[project.optional-dependencies]
test = [
    "pytest>=7.4",
]

[project.scripts]
orderinfo = "orderinfo.app:main"

[tool.hatch.build.targets.wheel]
packages = ["orderinfo"]

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
ignore_missing_imports = true
