[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "o2reportgen"
version = "0.11.0"
description = "HTTP service that renders dashboards in a headless Chrome and e-mails them as PDF reports"
requires-python = ">=3.10"
keywords = ["reports", "dashboards", "pdf", "headless-chrome", "smtp", "http-server"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Web Environment",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Framework :: aiohttp",
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
    "Topic :: Communications :: Email",
]
dependencies = [
    "aiohttp>=3.9",
    "websockets>=12.0",
    "python-dotenv>=1.0",
]

[project.optional-dependencies]
test = [
    "pytest>=7.4",
    "pytest-asyncio>=0.23",
]

[project.scripts]
o2-report-generator = "o2reportgen.app:main"

[tool.hatch.build.targets.wheel]
packages = ["o2reportgen"]

[tool.hatch.build.targets.sdist]
include = ["o2reportgen", "tests", "README.md"]

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
warn_redundant_casts = true
