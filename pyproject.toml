[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ouichefs"
version = "0.1.0"
description = "Create, inspect and modify ouichefs disk images from user space"
requires-python = ">=3.10"
dependencies = []
keywords = ["filesystem", "disk image", "mkfs", "block device", "education"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Education",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Filesystems",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
mkfs-ouichefs = "ouichefs.mkfs:main"

[tool.hatch.build.targets.wheel]
packages = ["ouichefs"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
