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

from __future__ import annotations

from typing import Final


DefaultDialectName: Final[str] = 'default'
"""Name of the fallback generator, used for dialects without a dedicated one."""

PLACEHOLDER_DEFINITION: Final[str] = '<not_used_definition>'
"""Definition used for view objects that only need a name (DROP / REFRESH)."""


class TableKind:
    """Table kind constants.
    Used in `table.info[TableObjectInfoKey.TABLE_KIND]` to distinguish object types.
    """
    TABLE = "TABLE"
    VIEW = "VIEW"
    MATERIALIZED_VIEW = "MATERIALIZED_VIEW"


class TableObjectInfoKey:
    """Keys for the `info` dictionary on Table objects, used for storing
    cross-dialect metadata about Views and MVs.
    """
    TABLE_KIND = "table_kind"
    QUERY_SOURCE = "query_source"
    STORAGE = "storage"
    DATA = "data"
    COLUMN_NAMES = "column_names"
    INVALID_COLUMNS = "invalid_columns"
    INVALID_DEFINITION = "invalid_definition"


class ViewOperation:
    """Operation names, used in log and error messages of the capability gate."""
    CREATE_VIEW = "create_view"
    DROP_VIEW = "drop_view"
    CREATE_MATERIALIZED_VIEW = "create_materialized_view"
    DROP_MATERIALIZED_VIEW = "drop_materialized_view"
    REFRESH_MATERIALIZED_VIEW = "refresh_materialized_view"
    LIST_MATERIALIZED_VIEWS = "materialized_views"

