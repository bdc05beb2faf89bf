[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "fatshell"
version = "0.1.0"
description = "FAT32 disk-image tools: MBR and FAT32 reading, a file table, printf/scanf formatting, a slab heap model and an interactive shell"
requires-python = ">=3.10"
dependencies = []
keywords = ["fat32", "filesystem", "mbr", "disk-image", "shell", "printf", "scanf", "slab-allocator"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
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
fatshell = "fatshell.shell:main"

[tool.hatch.build.targets.wheel]
packages = ["fatshell"]

[tool.pytest.ini_options]
addopts = "-ra"
