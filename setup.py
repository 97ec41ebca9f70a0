"""
Setup script for mental-sum.

Mental Sum is a terminal mental arithmetic trainer. It serves three roles:

1. Practice - Timed sessions of generated problems
2. Adaptive Coaching - Weaker strategies come up more often
3. Progress Tracking - Per-user statistics, streaks and review

The 'mentalsum' command is the entry point.
"""

from setuptools import find_packages, setup

setup(
    name="mental-sum",
    version="1.0.0",
    description="Terminal mental arithmetic trainer with adaptive strategy practice",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    author="Mental Sum",
    packages=find_packages(include=["mentalsum", "mentalsum.*"]),
    python_requires=">=3.10",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # Logging
        "loguru>=0.7.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "ruff>=0.1.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "mentalsum=mentalsum.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Education",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
    ],
    keywords="mental-math arithmetic practice cli education",
)
