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

__version__ = "0.1.0"

# import it to register the Alembic operations, renderers and comparators,
# it's not needed if users only want to use SQLAlchemy rather than Alembic
# from . import alembic

# the compiler module registers the DDL compilation hooks
from .sql import compiler  # noqa: F401
from .sql.compiler import supports_materialized_views
from .sql.ddl import (
    CreateMaterializedView,
    CreateView,
    DropMaterializedView,
    DropView,
    RefreshMaterializedView,
)
from .sql.schema import MaterializedView, MaterializedViewOptions, View
from .statements import (
    create_materialized_view,
    create_view,
    drop_materialized_view,
    drop_view,
    materialized_views,
    refresh_materialized_view,
    views,
)


__all__ = (
    "View", "MaterializedView", "MaterializedViewOptions",
    "CreateView", "DropView",
    "CreateMaterializedView", "DropMaterializedView", "RefreshMaterializedView",

    "create_view", "drop_view",
    "create_materialized_view", "drop_materialized_view", "refresh_materialized_view",
    "views", "materialized_views", "supports_materialized_views",
)
