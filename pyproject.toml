[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ext2sim"
version = "0.1.0"
description = "An interactive shell over an ext2 disk image: ls, cd, pwd, mkdir and creat"
requires-python = ">=3.10"
dependencies = []
keywords = ["ext2", "filesystem", "disk image", "inode", "shell"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
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
ext2sim = "ext2sim.shell:main"

[tool.hatch.build.targets.wheel]
packages = ["ext2sim"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
