from setuptools import find_packages, setup

version = None
with open("chunked_uploader/__init__.py", encoding="utf-8") as f:
    for line in f:
        if line.startswith("__version__"):
            version = line.strip().split()[-1][1:-1]
            break
assert version is not None, "Could not find version string"

with open("README.md", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="chunked-uploader",
    version=version,
    description="Chunked, resumable HTTP file upload client",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.10",
    install_requires=[
        "aiohttp>=3.9.0",
        "pydantic>=2.0",
        "pyee>=11.0.0",
        "tqdm>=4.66.0",
        "typer>=0.12.0",
    ],
    extras_require={
        "dev": [
            "pytest>=6.2.5",
            "pytest-cov>=2.12.1",
            "pytest-asyncio>=0.21.0",
            "pre-commit",
        ],
    },
    entry_points={
        "console_scripts": [
            "chunked-upload = chunked_uploader.cli.app:main",
        ]
    },
    keywords="upload chunked resumable multipart http client",
)
