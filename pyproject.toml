[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "simrt"
version = "0.1.0"
description = "Runtime support for equation-based simulations: options, equation partitioning and scheduling, profiling and the simulation loop."
requires-python = ">=3.10"
dependencies = []
keywords = ["simulation", "scheduler", "equations", "partitioning", "runtime"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Science/Research",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Mathematics",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["simrt"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 88
target-version = "py310"

[tool.mypy]
python_version = "3.10"
