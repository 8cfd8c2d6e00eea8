"""Setup configuration for the Anonymous Conference Client."""

from setuptools import setup, find_packages

setup(
    name="anonymous-conference-client",
    version="0.1.0",
    description="Client session engine for an anonymous conferencing service",
    author="DS-G1-SMS Team",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.8",
    install_requires=[
        "websockets>=12.0",
        "textual>=0.47.0",
        "rich>=13.0",
        "cryptography>=44.0",
        "aioconsole>=0.8.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.23",
        ],
    },
    entry_points={
        "console_scripts": [
            "anonconf=anonconf.main:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
