[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ogckit"
version = "0.1.0"
description = "Client, storage drivers and ASGI web service for OGC APIs and SpatioTemporal Asset Catalogs"
requires-python = ">=3.10"
keywords = ["ogc", "ogcapi", "stac", "geojson", "features", "edr", "postgis", "gis"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
    "Topic :: Scientific/Engineering :: GIS",
]
dependencies = [
    "requests",
    "starlette",
    "uvicorn",
    "pyyaml",
    "pint",
    "python-dotenv",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
    "responses",
    "httpx",
]

[tool.hatch.build.targets.wheel]
packages = ["ogckit"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
ignore_missing_imports = true
