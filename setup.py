#!/usr/bin/env python3
"""
Strata Framework Setup
Middleware-first ASGI web framework core
"""

from setuptools import setup, find_packages
from pathlib import Path


def get_version():
    """Get version from __init__.py"""
    version_file = Path(__file__).parent / "src" / "strata" / "__init__.py"
    if version_file.exists():
        with open(version_file, 'r') as f:
            for line in f:
                if line.startswith("__version__"):
                    return line.split("=")[1].strip().strip('"\'')
    return "0.1.0"


def read_readme():
    """Read README file"""
    readme_path = Path(__file__).parent / "README.md"
    if readme_path.exists():
        with open(readme_path, 'r', encoding='utf-8') as f:
            return f.read()
    return ""


# Core dependencies
install_requires = [
    "hypercorn>=0.14.0",      # ASGI server used by Application.listen()
]

# Optional dependencies for enhanced features
extras_require = {
    # Performance optimizations
    "performance": [
        "uvloop>=0.16.0; sys_platform != 'win32'",  # Fast event loop (Unix only)
    ],

    # Test suite
    "test": [
        "pytest>=7.0.0",
        "pytest-asyncio>=0.21.0",
        "pytest-cov>=3.0.0",
        "faker>=15.0.0",
        "httpx>=0.24.0",
    ],

    # Development tools
    "dev": [
        "pytest>=7.0.0",
        "pytest-asyncio>=0.21.0",
        "pytest-cov>=3.0.0",
        "faker>=15.0.0",
        "httpx>=0.24.0",
        "black>=21.0.0",
        "isort>=5.0.0",
        "flake8>=3.9.0",
        "mypy>=0.910",
    ],
}

# All optional dependencies
extras_require["all"] = sorted({
    dep for deps in extras_require.values() for dep in deps
})

setup(
    name="strata",
    version=get_version(),
    author="Strata Team",
    author_email="team@strata.dev",
    description="Middleware-first ASGI web framework core",
    long_description=read_readme(),
    long_description_content_type="text/markdown",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
        "Topic :: Software Development :: Libraries :: Application Frameworks",
        "Framework :: AsyncIO",
    ],
    keywords="web framework asgi middleware async",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.8",
    install_requires=install_requires,
    extras_require=extras_require,
    zip_safe=False,
)
