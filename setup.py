"""
Setup script for memoria-topics.

Memoria Topics is the offline-first recording topic service for the
Memoria app. It serves three roles:

1. Suggestion Engine - Next-topic picks that avoid 30-day repeats
2. Local Cache - 24h catalog cache with stale fallback when offline
3. History Mirror - Local-first topic history mirrored to Supabase

The 'memoria-topics' command is the entry point.
"""

from setuptools import find_namespace_packages, setup

setup(
    name="memoria-topics",
    version="1.0.0",
    description="Offline-first recording topic suggestions with a TTL cache and history sync",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    author="Memoria",
    packages=find_namespace_packages(include=["src", "src.*"]),
    py_modules=["config"],
    python_requires=">=3.11",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # HTTP
        "httpx>=0.25.0",
        # Logging
        "loguru>=0.7.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.0.0",
            "ruff>=0.1.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "memoria-topics=src.cli.main:run",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Developers",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    keywords="topics cache offline-first supabase cli",
)
