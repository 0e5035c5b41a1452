"""
Setup script for practice-scheduler.

Practice Scheduler plans recurring practice of music sections using an
Ebbinghaus forgetting-curve model with per-user adaptive calibration:

1. Interval Engine - forgetting-curve intervals with scientific clamps
2. Adaptive Calibration - personal decay-rate learning from outcomes
3. Lifecycle Control - Active / Maintenance / Inactive scheduling rules

The 'practice' command is the terminal entry point.
"""

from setuptools import find_namespace_packages, setup

setup(
    name="practice-scheduler",
    version="1.0.0",
    description="Adaptive spaced-repetition scheduling for music practice sections",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    author="Practice Scheduler Contributors",
    packages=find_namespace_packages(include=["src", "src.*"]),
    py_modules=["config"],
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
            "practice=src.cli.practice_cli:run",
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
        "Topic :: Multimedia :: Sound/Audio",
    ],
    keywords="music practice spaced-repetition ebbinghaus scheduling",
)
