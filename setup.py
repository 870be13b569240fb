#!/usr/bin/env python
from setuptools import setup, find_packages
from os import path
import sys

min_py_version = (3, 10)

if sys.version_info < min_py_version:
    sys.exit(
        "sqlblob is only supported for Python {}.{} or higher".format(*min_py_version)
    )

here = path.abspath(path.dirname(__file__))

long_description = (
    "A layered text blob store over a relational text table, with compression, "
    "legacy encodings, external stores and a read-through cache."
)

# read in version number into __version__
with open(path.join(here, "src", "sqlblob", "version.py")) as f:
    exec(f.read())

with open(path.join(here, "requirements.txt")) as f:
    requirements = [line.split("#", 1)[0].rstrip() for line in f.readlines()]

setup(
    name="sqlblob",
    version=__version__,
    description="A layered text blob store.",
    long_description=long_description,
    author="sqlblob contributors",
    license="GNU LGPL",
    keywords=[
        "database",
        "blob storage",
        "compression",
        "cache",
    ],
    package_dir={"": "src"},
    packages=find_packages("src", exclude=["contrib", "docs", "tests*"]),
    install_requires=[r for r in requirements if r],
    extras_require={"test": ["pytest"]},
    python_requires=">={}.{}".format(*min_py_version),
)
