#!/usr/bin/env python3
"""
Setup script for the helper bridge
"""

from setuptools import setup, find_namespace_packages

setup(
    name="helper-bridge",
    version="0.0.1",
    description="Persistent WebSocket bridge between a JSON envelope helper and binary packets",
    packages=find_namespace_packages(include=["bridge", "bridge.*", "client", "client.*", "shared", "shared.*"]),
    install_requires=[
        "websockets==15.0",
        "aiohttp==3.11.18",
        "click==8.1.7",
        "typer==0.12.3",
        "rich==13.9.2",
        "PyYAML==6.0.2",
    ],
    extras_require={
        "test": [
            "pytest==8.4.2",
            "pytest-asyncio==1.2.0",
        ],
    },
    python_requires=">=3.10",
    entry_points={
        'console_scripts': [
            'helper-bridge=client.bridge_cli:main',
        ],
    },
)
