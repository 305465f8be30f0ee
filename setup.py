"""Setup configuration for n8nctl."""

import os
import re

from setuptools import find_packages, setup

here = os.path.abspath(os.path.dirname(__file__))

# Read the version without importing the package (its dependencies may be missing)
with open(os.path.join(here, "n8nctl", "__init__.py"), encoding="utf-8") as f:
    init_source = f.read()
__version__ = re.search(r'__version__ = "([^"]+)"', init_source).group(1)
__author__ = re.search(r'__author__ = "([^"]+)"', init_source).group(1)

with open(os.path.join(here, "README.md"), encoding="utf-8") as f:
    long_description = f.read()

setup(
    name="n8nctl",
    version=__version__,
    description="Setup, backup, restore and update tool for n8n behind Traefik on docker compose",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author=__author__,
    keywords="n8n traefik docker compose backup restore cli",
    packages=find_packages(exclude=["tests", "tests.*"]),
    package_data={"n8nctl": ["templates/*.j2"]},
    python_requires=">=3.11.4",
    install_requires=[
        "click>=8.0.0",
        "pyyaml>=6.0",
        "docker>=6.0.0",
        "gitpython>=3.1.0",
        "jinja2>=3.0.0",
        "cryptography>=3.4.0",
        "jsonschema>=4.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "ruff>=0.12.0",
            "mypy>=0.991",
        ],
    },
    entry_points={
        "console_scripts": [
            "n8nctl=n8nctl.cli:cli",
        ],
    },
)
