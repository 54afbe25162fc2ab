#!/usr/bin/python3
# Setup file for packscan
# Copyright (C) 2025 The packscan authors
# SPDX-License-Identifier: Apache-2.0 OR GPL-2.0-or-later

from setuptools import setup

setup(
    name="packscan",
    version="0.1.0",
    description=(
        "Fetch a git pack over smart HTTP or SSH and stream its commit and "
        "blob payloads"
    ),
    license="Apache-2.0 OR GPL-2.0-or-later",
    packages=["packscan"],
    package_data={"": ["py.typed"]},
    python_requires=">=3.9",
    install_requires=["urllib3>=2.2.2"],
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Programming Language :: Python :: 3",
        "Operating System :: POSIX",
        "Topic :: Software Development :: Version Control",
    ],
)
