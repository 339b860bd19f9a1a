#!/usr/bin/env python3
"""
Setup script for loopprobe - loop discovery for machine code procedures
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read the README file
readme_file = Path(__file__).parent / "README.md"
long_description = readme_file.read_text(encoding="utf-8") if readme_file.exists() else ""

# Read version from the version file
version = "0.3.0"
version_file = Path(__file__).parent / "loopprobe" / "__version__.py"
if version_file.exists():
    exec(version_file.read_text())
    version = __version__  # noqa: F821

setup(
    name="loopprobe",
    version=version,
    description="Control flow, dominator and natural loop recovery for machine code procedures",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="loopprobe Contributors",
    license="MIT",
    packages=find_packages(exclude=["tests", "tests.*", "docs", "htmlcov"]),
    py_modules=["main"],
    include_package_data=True,
    python_requires=">=3.8",
    install_requires=[
        "capstone>=5.0.1,<6",
        "networkx>=3.0",
        "unicorn>=2.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-cov>=4.1.0",
            "hypothesis>=6.82.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "loopprobe=main:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Topic :: Software Development :: Disassemblers",
        "Topic :: Software Development :: Debuggers",
    ],
    keywords="control-flow-graph dominators loops binary-analysis instrumentation",
    zip_safe=False,
)
