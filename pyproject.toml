[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "pitchshifter"
version = "1.2.0"
description = "STFT phase-vocoder pitch shifting that keeps duration, with a threaded block pipeline for live audio"
requires-python = ">=3.10"
dependencies = [
    "numpy",
]
keywords = [
    "audio",
    "dsp",
    "pitch-shift",
    "phase-vocoder",
    "stft",
    "fft",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Multimedia :: Sound/Audio :: Analysis",
    "Topic :: Multimedia :: Sound/Audio",
    "Topic :: Scientific/Engineering :: Mathematics",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["pitchshifter"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 88
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
