"""
MediaRelay setuptools build script.

Usage:
    # Development (editable install):
    pip install -e .

    # Run:
    mediarelay path/to/talk.mp3
"""

from setuptools import setup

APP_NAME = "MediaRelay"

setup(
    name=APP_NAME,
    version="1.0.0",
    description="Chunked upload and async transcription client for local media files",
    packages=[
        "mediarelay",
        "mediarelay.core",
    ],
    py_modules=["main"],
    install_requires=[
        "requests>=2.28.0",
    ],
    python_requires=">=3.10",
    entry_points={
        "console_scripts": [
            "mediarelay=main:main",
        ],
    },
)
