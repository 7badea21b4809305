"""Setup script for extrepo.

This script installs the extrepo library, its command line tool and
their dependencies.
"""

from __future__ import annotations

import setuptools

# Read the long description from README.md
with open("README.md", "r", encoding="utf-8") as f:
    long_description = f.read()

# Read version from __version__.py
version = {}
with open("extrepo/__version__.py", "r", encoding="utf-8") as f:
    exec(f.read(), version)

# Dependencies
install_requires = [
    "pydantic>=2.0.0",
    "pyyaml>=6.0",
    "structlog>=22.1.0",
    "httpx>=0.24.0",
    "tenacity>=8.2.0",
    "python-json-logger>=2.0.4",
    "packaging>=23.0",
]

# Development dependencies
dev_requires = [
    "pytest>=7.0.0",
    "pytest-cov>=4.0.0",
    "black>=23.1.0",
    "isort>=5.12.0",
    "mypy>=1.0.0",
    "types-pyyaml",
]

setuptools.setup(
    name="extrepo",
    version=version.get("__version__", "0.1.0"),
    description="Discovery, description and resolution of versioned extension packages",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=setuptools.find_packages(include=["extrepo", "extrepo.*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.11",
    install_requires=install_requires,
    extras_require={
        "dev": dev_requires,
        "test": ["pytest>=7.0.0", "pytest-cov>=4.0.0"],
    },
    entry_points={
        "console_scripts": [
            "extrepo=extrepo.cli:main",
        ],
    },
)
