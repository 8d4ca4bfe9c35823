from setuptools import setup, find_packages
from pathlib import Path

# Read the README file for the long description
this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text()

setup(
    name="comicfs",
    version="0.1.0",
    description="A read-only FUSE filesystem that shows comic archives as directories",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    entry_points={
        "console_scripts": [
            "comicfs=comicfs.cli:app"
        ],
    },
    install_requires=[
        # Core dependencies only
        "typer>=0.9.0",
        "rich>=13.0.0",
        "Pillow>=10.0.0",
    ],
    extras_require={
        # Mounting needs libfuse3 and its Python binding
        "fuse": [
            "pyfuse3>=3.2.0",
            "trio>=0.22.0",
        ],
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
        ],
        "all": [
            "pyfuse3>=3.2.0",
            "trio>=0.22.0",
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "License :: OSI Approved :: MIT License",
        "Operating System :: POSIX :: Linux",
        "Development Status :: 4 - Beta",
        "Intended Audience :: End Users/Desktop",
        "Topic :: System :: Filesystems",
        "Topic :: Multimedia :: Graphics :: Graphics Conversion",
    ],
    python_requires='>=3.9',
)
