#!/usr/bin/env python3
"""Setup script for the LSP multiplexer package."""

import sys

from setuptools import find_packages, setup

# Read version from the package
with open("lspmux/__init__.py") as f:
    for line in f:
        if line.startswith("__version__"):
            version = line.split("=")[1].strip().strip('"').strip("'")
            break
    else:
        version = "0.0.0"

# Read long description from README
with open("README.md") as f:
    long_description = f.read()

# Display a note about external dependencies
print("""
NOTE: lspmux launches the language servers named in its configuration file.
Those servers (pylsp, ruff-lsp, typescript-language-server, ...) are separate
programs and must be installed on their own.
""", file=sys.stderr)

setup(
    name="lspmux",
    version=version,
    description="Language Server Protocol multiplexer",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "pydantic>=2.0.0",
        "click>=8.1.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "lspmux=lspmux.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.11",
)
