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

from typing import Optional, Union

from sqlalchemy.schema import MetaData
from sqlalchemy.sql.ddl import ExecutableDDLElement
from sqlalchemy.sql.expression import TableClause

from spectacles.common.params import PLACEHOLDER_DEFINITION
from spectacles.common.utils import ViewNameType, split_view_name

from .schema import MaterializedView, View


def as_view_element(
    view: ViewNameType,
    schema: Optional[str] = None,
    materialized: bool = False,
) -> TableClause:
    """
    Return a table object to use as the target of a view DDL statement.

    View/Table objects are used as they are. For a name, a placeholder
    View (or MaterializedView) is made in a private MetaData, since only
    the name and schema are needed to DROP or REFRESH.
    """
    if isinstance(view, TableClause) and schema is None:
        return view
    name, schema = split_view_name(view, schema)
    cls = MaterializedView if materialized else View
    return cls(name, MetaData(), definition=PLACEHOLDER_DEFINITION, schema=schema)


class CreateView(ExecutableDDLElement):
    """Represents a CREATE VIEW DDL statement."""
    __visit_name__ = "create_view"

    def __init__(self, element: View, or_replace: bool = False, if_not_exists: bool = False) -> None:
        self.element = element
        self.or_replace = or_replace
        self.if_not_exists = if_not_exists


class DropView(ExecutableDDLElement):
    """Represents a DROP VIEW DDL statement."""
    __visit_name__ = "drop_view"

    def __init__(self, element: Union[TableClause, str], if_exists: bool = False, cascade: bool = False) -> None:
        self.element = as_view_element(element)
        self.if_exists = if_exists
        self.cascade = cascade


class CreateMaterializedView(ExecutableDDLElement):
    """Represents a CREATE MATERIALIZED VIEW DDL statement.

    Storage parameters and data population come from the MaterializedView
    object, see `MaterializedView.options`.
    """
    __visit_name__ = "create_materialized_view"

    def __init__(self, element: MaterializedView, if_not_exists: bool = False) -> None:
        self.element = element
        self.if_not_exists = if_not_exists


class DropMaterializedView(ExecutableDDLElement):
    """Represents a DROP MATERIALIZED VIEW DDL statement."""
    __visit_name__ = "drop_materialized_view"

    def __init__(self, element: Union[TableClause, str], if_exists: bool = False, cascade: bool = False) -> None:
        self.element = as_view_element(element, materialized=True)
        self.if_exists = if_exists
        self.cascade = cascade


class RefreshMaterializedView(ExecutableDDLElement):
    """Represents a REFRESH MATERIALIZED VIEW statement."""
    __visit_name__ = "refresh_materialized_view"

    def __init__(
        self,
        element: Union[TableClause, str],
        concurrently: bool = False,
        with_data: bool = True,
    ) -> None:
        """
        Args:
            element: The materialized view, or its name.
            concurrently: Refresh without locking out concurrent selects.
            with_data: When False, the view is emptied (``WITH NO DATA``)
                and becomes unscannable until the next refresh.
        """
        self.element = as_view_element(element, materialized=True)
        self.concurrently = concurrently
        self.with_data = with_data
