#! /usr/bin/python3
# Copyright 2021-present StarRocks, Inc. All rights reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

import ast
import re

from setuptools import find_packages, setup

_version_re = re.compile(r"__version__\s+=\s+(.*)")

with open("spectacles/__init__.py", "rb") as f:
    spectacles_version = _version_re.search(f.read().decode("utf-8"))
    assert spectacles_version is not None
    version = str(ast.literal_eval(spectacles_version.group(1)))

with open("README.md") as readme:
    long_description = readme.read()

setup(
    name="spectacles",
    version=version,
    description="SQL views and materialized views for SQLAlchemy and Alembic",
    long_description=long_description,
    long_description_content_type="text/markdown",
    license="Apache 2.0",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: Apache Software License",
        "Programming Language :: Python",
        "Programming Language :: Python :: 3 :: Only",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Database :: Front-Ends",
    ],
    python_requires=">=3.8",
    install_requires=[
        "sqlalchemy>=2.0",
        "alembic>=1.7",
    ],
    extras_require={
        "test": ["pytest"],
        "postgresql": ["psycopg2-binary"],
        "mysql": ["pymysql>=1.1.0"],
    },
    packages=find_packages(include=["spectacles", "spectacles.*"]),
    package_data={"": ["README.md"]},
    include_package_data=True,
    zip_safe=False,
)
