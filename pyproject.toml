[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "tecnicofs"
version = "0.1.0"
description = "A small in-memory i-node file system with a named-pipe client and server"
requires-python = ">=3.10"
dependencies = []
keywords = ["filesystem", "inode", "in-memory", "named-pipe", "client-server"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Operating System :: POSIX",
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
tfs-server = "tecnicofs.server:main"

[tool.hatch.build.targets.wheel]
packages = ["tecnicofs"]

[tool.pytest.ini_options]
addopts = "-ra"
