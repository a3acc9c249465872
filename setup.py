from setuptools import setup, find_packages

setup(
    name="contrib-tracker",
    version="2.0.0",
    description="Track open-source pull requests and find issues worth working on",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        "aiohttp>=3.9.0",
        "rich>=13.0.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "contrib-tracker=contrib_tracker.cli:main",
        ],
    },
)
