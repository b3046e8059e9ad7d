[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "oscmap"
version = "0.1.0"
description = "Typed OSC argument values, MIDI learn tables, automation slots and coarse/fine MIDI-to-parameter mapping"
requires-python = ">=3.10"
dependencies = []
keywords = ["osc", "open sound control", "midi", "midi learn", "automation", "nrpn"]
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
    "Topic :: Multimedia :: Sound/Audio :: MIDI",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["oscmap"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 88
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
