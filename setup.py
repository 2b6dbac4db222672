from pathlib import Path
from setuptools import find_packages, setup


ROOT = Path(__file__).parent


def read_version() -> str:
    """Return ``__version__`` from the package without importing it."""
    for line in (ROOT / "solfeed" / "__init__.py").read_text(encoding="utf-8").splitlines():
        if line.startswith("__version__"):
            return line.split("=", 1)[1].strip().strip("\"'")
    raise RuntimeError("unable to find __version__")


setup(
    name="solfeed",
    version=read_version(),
    description="Multi-source Solana token market data feed with heuristic scoring",
    packages=find_packages(include=["solfeed", "solfeed.*"]),
    python_requires=">=3.10",
    install_requires=[
        "aiohttp>=3.8",
        "cachetools>=5.0",
        "pydantic>=2.0",
        "PyYAML>=6.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "solfeed=solfeed.cli:main",
        ],
    },
)
