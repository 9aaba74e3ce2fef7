#!/usr/bin/env python3
"""
Setup script for gpg-env
"""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="gpg-env",
    version="0.1.0",
    description="Manage environment variables in a passphrase-encrypted OpenPGP file",
    long_description=long_description,
    long_description_content_type="text/markdown",
    package_dir={"": "src"},
    packages=find_packages("src"),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: POSIX",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
        "Topic :: Security :: Cryptography",
        "Topic :: Utilities",
    ],
    python_requires=">=3.11",
    install_requires=[
        "click>=8.1",
        "cryptography>=41",
        "pydantic>=2",
        "rich>=13",
        "structlog>=23",
    ],
    extras_require={
        "test": [
            "pytest>=7",
        ],
    },
    entry_points={
        "console_scripts": [
            "gpg-env=gpg_env.cli:main",
        ],
    },
    include_package_data=True,
    zip_safe=False,
)
