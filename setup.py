"""
Setup script for kvextract.
"""
from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="kvextract",
    version="0.1.0",
    author="kvextract Contributors",
    description="Extract and summarize Kubernetes data from the bolt db files etcd persists to",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Intended Audience :: System Administrators",
        "Topic :: Database",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Operating System :: POSIX",
    ],
    python_requires=">=3.8",
    install_requires=[
        "skiplistcollections>=0.0.6",
        "PyYAML>=5.1",
        "Jinja2>=2.11",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "kvextract=scripts.cli:main",
        ],
    },
    include_package_data=True,
)
