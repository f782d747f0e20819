"""
Hermes setup.py — Package configuration and CLI entry points.
"""

from setuptools import find_packages, setup

setup(
    name="hermes-relay",
    version="0.1.0",
    description="Hermes — configuration-driven webhook relay",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.11",
    entry_points={
        "console_scripts": [
            "hermes=hermes.cli:main",
            "hermes-admin=hermes.admin:main",
        ],
    },
    install_requires=[
        "fastapi>=0.110",
        "uvicorn>=0.29",
        "pydantic>=2.5",
        "pyyaml>=6.0",
        "httpx>=0.27",
        "jinja2>=3.1",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
        ],
    },
)
