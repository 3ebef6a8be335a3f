"""Build PeerPair package."""
import setuptools

with open("README.md") as f:
    long_desc = f.read()

setuptools.setup(
    name="peerpair",
    version="0.1.0",
    description=(
        "Pair a display and a controller over a WebRTC data channel "
        "using a small signaling relay"
    ),
    long_description=long_desc,
    long_description_content_type="text/markdown",
    packages=setuptools.find_packages(exclude=("tests", "tests.*")),
    classifiers=[
        "Programming Language :: Python :: 3",
        "Framework :: AsyncIO",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.10",
    install_requires=[
        "aiortc>=1.5.0",
        "aiosqlite",
        "click<8.2",
        "pydantic>=2",
        "pyee>=9",
        "quart>=0.19",
        "requests>=2.27.0",
        "tomli ; python_version<'3.11'",
        "tomli-w",
        "typing-extensions>=4.3.0 ; python_version<'3.11'",
        "uvicorn",
        "uvloop",
    ],
    extras_require={
        "dev": [
            "coverage",
            "pytest",
            "pytest-asyncio>=0.23.2",
        ],
    },
    entry_points={
        "console_scripts": [
            "peerpair = peerpair.cli:cli",
            "peerpair-relay = peerpair.relay.run:cli",
        ],
    },
)
