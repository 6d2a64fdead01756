"""
Setup configuration for scriptintel package.
"""

from setuptools import setup, find_packages

setup(
    name="creator-script-intelligence",
    version="0.1.0",
    description="Adaptive short-video script generation from creator performance and style",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.9",
    install_requires=[
        "supabase>=2.0",
        "pydantic>=2.0",
        "python-dotenv>=1.0",
        "openai>=1.0",
        "numpy>=1.24",
        "click>=8.0",
        "logfire>=0.50",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
        ],
    },
    entry_points={
        "console_scripts": [
            "scriptintel=scriptintel.cli.main:cli",
        ],
    },
)
