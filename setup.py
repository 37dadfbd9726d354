#!/usr/bin/env python3
"""
ayurflow Setup Script
Install the ayurflow research orchestration engine and CLI.
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read README for long description
readme_file = Path(__file__).parent / "README.md"
long_description = readme_file.read_text() if readme_file.exists() else ""

setup(
    name="ayurflow",
    version="0.1.0",
    description="Research request orchestration: workflow planning, bounded worker execution and result synthesis",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["ayurflow", "ayurflow.*"]),
    package_data={
        "ayurflow": ["templates/*.yaml"],
    },
    include_package_data=True,
    python_requires=">=3.10",
    install_requires=[
        # Core dependencies
        "click>=8.0.0",
        "pydantic>=2.0.0",
        "pyyaml>=6.0.0",
        "rich>=13.0.0",

        # Persistence backends
        "aiosqlite>=0.19.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.24.0",
            "black>=23.0.0",
            "mypy>=1.0.0",
            "ruff>=0.1.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "ayurflow=ayurflow.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Intended Audience :: Science/Research",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Scientific/Engineering :: Bio-Informatics",
        "Topic :: Software Development :: Libraries :: Python Modules",
    ],
    keywords="workflow orchestration research ayurveda async",
)
