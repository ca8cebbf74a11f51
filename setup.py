# setup.py
"""Setup script for O-Lang."""

from setuptools import setup, find_packages

setup(
    name="olang",
    version="1.0.0",
    packages=find_packages(include=["olang", "olang.*", "resolvers", "resolvers.*", "cli", "cli.*"]),
    include_package_data=True,
    install_requires=[
        "click>=8.0",
        "pyyaml>=6.0",
        "pydantic>=2.0",
        "pydantic-settings>=2.0",
        "structlog>=23.0",
        "aiosqlite>=0.19",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
            "black>=23.0",
            "flake8>=6.0",
        ]
    },
    entry_points={
        "console_scripts": [
            "olang=cli.main:cli",
        ],
    },
    python_requires=">=3.8",
)
