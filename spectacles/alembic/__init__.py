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

# Importing this package registers the view operations, their implementations,
# the renderers and the autogenerate comparators with Alembic.
# Use it in `env.py`:
#
#     import spectacles.alembic
#     context.configure(..., include_object=spectacles.alembic.combine_include_object(None))

from . import compare, ops, render, toimpl  # noqa: F401
from .compare import combine_include_object, include_object_for_views
from .dump import dump, dump_views, load


__all__ = (
    "combine_include_object",
    "include_object_for_views",
    "dump",
    "dump_views",
    "load",
)
