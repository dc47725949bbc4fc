[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "breathwatch"
version = "1.0.0"
description = "Watch a sleeping infant's breathing in video using Riesz-pyramid motion magnification and frame differencing"
requires-python = ">=3.10"
keywords = [
    "motion magnification",
    "riesz pyramid",
    "baby monitor",
    "breathing",
    "video",
    "butterworth",
    "ini",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: End Users/Desktop",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Image Processing",
    "Topic :: Multimedia :: Video",
]
dependencies = [
    "numpy",
    "scipy",
    "imageio",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
breathwatch = "breathwatch.app:main"

[tool.hatch.build.targets.wheel]
packages = ["breathwatch"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
