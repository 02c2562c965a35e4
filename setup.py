"""Setup configuration for the Commandless relay SDK."""

from setuptools import setup, find_packages

setup(
    name="commandless",
    version="0.1.0",
    description="Relay SDK that gates Discord messages and forwards them to Commandless",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=[
        "py-cord>=2.5",
        "aiohttp>=3.9",
        "PyYAML>=6.0",
        "python-dotenv>=1.0",
        "prompt_toolkit>=3.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
        ],
    },
    entry_points={
        "console_scripts": [
            "commandless-discord=commandless.main:main",
        ],
    },
)
