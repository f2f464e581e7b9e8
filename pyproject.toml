[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ccasim"
version = "0.1.0"
description = "Simulation of Arm CCA worlds, a granule protection table and realm isolation"
requires-python = ">=3.10"
dependencies = []
keywords = ["arm", "cca", "rme", "granule protection table", "realm", "simulation"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Science/Research",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Security",
    "Topic :: System :: Emulators",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
ccasim = "ccasim.simulation:main"
ccasim-gpt-bench = "ccasim.benchmark:main"

[tool.hatch.build.targets.wheel]
packages = ["ccasim"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
