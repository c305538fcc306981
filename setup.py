"""Setup script for D&D Level Up."""

from setuptools import setup

# Read requirements
with open("requirements.txt") as f:
    requirements = [line.strip() for line in f if line.strip() and not line.startswith("#")]

# Read README for long description
with open("README.md", encoding="utf-8") as f:
    long_description = f.read()

setup(
    name="dnd-level-up",
    version="1.0.0",
    author="Jeeves Jeevesenson",
    description="D&D 5e level-up wizard with staged changes and a LAN server",
    long_description=long_description,
    long_description_content_type="text/markdown",
    py_modules=[
        "character_model",
        "character_storage",
        "reference_data",
        "level_up_rules",
        "level_up_apply",
        "level_up_wizard",
        "level_up_server",
    ],
    install_requires=requirements,
    extras_require={
        "test": ["pytest", "httpx"],
    },
    python_requires=">=3.9",
    entry_points={
        "console_scripts": [
            "dnd-level-up=level_up_server:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: End Users/Desktop",
        "Topic :: Games/Entertainment :: Role-Playing",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Operating System :: OS Independent",
    ],
    keywords="dnd dungeons dragons level up character 5e tabletop rpg",
)
