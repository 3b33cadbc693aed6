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

"""
Connection-level view statements.

``bind`` is anything with a ``dialect`` and an ``execute()``, such as a
`sqlalchemy.engine.Connection`, ``op.get_bind()`` in a migration, or a mock
engine made by `sqlalchemy.create_mock_engine`. Every function builds one
DDL element, executes it, and returns what ``execute()`` returned.

Example:
    with engine.begin() as conn:
        create_view(conn, 'new_product_users', select(products.c.name, users.c.name)
                    .join_from(products, users))
        create_materialized_view(conn, 'empty_product_users',
                                 'SELECT name FROM products',
                                 storage={'fillfactor': 50}, data=False)
        refresh_materialized_view(conn, 'empty_product_users')
"""

import logging
from typing import Any, Callable, Iterable, List, Mapping, Optional

from sqlalchemy.schema import MetaData

from spectacles import reflection
from spectacles.common.params import ViewOperation
from spectacles.common.utils import ViewNameType, gen_simple_qualified_name, split_view_name
from spectacles.sql import compiler
from spectacles.sql.ddl import (
    CreateMaterializedView,
    CreateView,
    DropMaterializedView,
    DropView,
    RefreshMaterializedView,
    as_view_element,
)
from spectacles.sql.query import QuerySource, QueryType, evaluate_deferred, resolve_query, to_query_source
from spectacles.sql.schema import MaterializedView, View


logger = logging.getLogger(__name__)


def _resolve_source(
    name: str, query: Optional[QueryType], block: Optional[Callable[[], Any]], bind: Any
) -> QuerySource:
    """
    Classify the query and run a block once. The source is resolved with the
    dialect of the bind, so a missing or empty query fails before any SQL is sent.
    """
    source = evaluate_deferred(to_query_source(query, block))
    resolve_query(name, source, dialect=bind.dialect)
    return source


def supports_materialized_views(bind: Any) -> bool:
    """Whether the database of the bind supports materialized views."""
    return compiler.supports_materialized_views(bind)


def create_view(
    bind: Any,
    view_name: ViewNameType,
    query: Optional[QueryType] = None,
    *,
    block: Optional[Callable[[], Any]] = None,
    schema: Optional[str] = None,
    column_names: Optional[Iterable[str]] = None,
    or_replace: bool = False,
    if_not_exists: bool = False,
) -> Any:
    """
    Create a view.

    Args:
        bind: Connection (or mock engine) to execute on.
        view_name: Name of the view, a str or a ``quoted_name``.
        query: SQL string or selectable. Takes precedence over ``block``.
        block: Callable returning a SQL string or a selectable.
        schema: Schema of the view.
        column_names: Column list of the view, ``CREATE VIEW name (a, b) AS ...``.
        or_replace: Emit ``CREATE OR REPLACE VIEW`` (``CREATE OR ALTER`` on SQL Server).
        if_not_exists: Emit ``CREATE VIEW IF NOT EXISTS``.

    Raises:
        MissingQueryError: if neither a query nor a block is given, or the query is empty.
        UnsupportedOperationError: if an option is not supported by the database.
    """
    name, schema = split_view_name(view_name, schema)
    source = _resolve_source(name, query, block, bind)
    view = View(name, MetaData(), definition=source, schema=schema, column_names=column_names)
    logger.debug("create view %s", gen_simple_qualified_name(name, schema))
    return bind.execute(CreateView(view, or_replace=or_replace, if_not_exists=if_not_exists))


def drop_view(
    bind: Any,
    view_name: ViewNameType,
    *,
    schema: Optional[str] = None,
    if_exists: bool = False,
    cascade: bool = False,
) -> Any:
    """Drop a view."""
    view = as_view_element(view_name, schema)
    logger.debug("drop view %s", gen_simple_qualified_name(view.name, view.schema))
    return bind.execute(DropView(view, if_exists=if_exists, cascade=cascade))


def create_materialized_view(
    bind: Any,
    view_name: ViewNameType,
    query: Optional[QueryType] = None,
    *,
    block: Optional[Callable[[], Any]] = None,
    schema: Optional[str] = None,
    column_names: Optional[Iterable[str]] = None,
    storage: Optional[Mapping[str, Any]] = None,
    data: bool = True,
    force: bool = False,
    if_not_exists: bool = False,
) -> Any:
    """
    Create a materialized view.

    Args:
        storage: Storage parameters, such as ``{'fillfactor': 50}``.
        data: When False, the view is created ``WITH NO DATA``.
        force: Drop an existing materialized view of the same name first.
        Other arguments are the same as `create_view`.

    Raises:
        UnsupportedOperationError: if the database has no materialized views.
        MissingQueryError: if neither a query nor a block is given, or the query is empty.
    """
    compiler.check_materialized_views_supported(bind, ViewOperation.CREATE_MATERIALIZED_VIEW)
    name, schema = split_view_name(view_name, schema)
    source = _resolve_source(name, query, block, bind)
    view = MaterializedView(name, MetaData(), definition=source, schema=schema, column_names=column_names,
                            storage=storage, data=data)

    if force:
        drop_materialized_view(bind, view, if_exists=True)
    logger.debug("create materialized view %s", gen_simple_qualified_name(name, schema))
    return bind.execute(CreateMaterializedView(view, if_not_exists=if_not_exists))


def drop_materialized_view(
    bind: Any,
    view_name: ViewNameType,
    *,
    schema: Optional[str] = None,
    if_exists: bool = False,
    cascade: bool = False,
) -> Any:
    """Drop a materialized view."""
    compiler.check_materialized_views_supported(bind, ViewOperation.DROP_MATERIALIZED_VIEW)
    view = as_view_element(view_name, schema, materialized=True)
    logger.debug("drop materialized view %s", gen_simple_qualified_name(view.name, view.schema))
    return bind.execute(DropMaterializedView(view, if_exists=if_exists, cascade=cascade))


def refresh_materialized_view(
    bind: Any,
    view_name: ViewNameType,
    *,
    schema: Optional[str] = None,
    concurrently: bool = False,
    data: bool = True,
) -> Any:
    """
    Refresh a materialized view.

    ``data=False`` empties the view (``WITH NO DATA``), ``concurrently=True``
    refreshes it without blocking readers. The two can't be combined.
    """
    compiler.check_materialized_views_supported(bind, ViewOperation.REFRESH_MATERIALIZED_VIEW)
    view = as_view_element(view_name, schema, materialized=True)
    logger.debug("refresh materialized view %s", gen_simple_qualified_name(view.name, view.schema))
    return bind.execute(RefreshMaterializedView(view, concurrently=concurrently, with_data=data))


def views(bind: Any, schema: Optional[str] = None) -> List[str]:
    """Names of the (non-materialized) views in the schema."""
    return reflection.get_view_names(bind, schema)


def materialized_views(bind: Any, schema: Optional[str] = None) -> List[str]:
    """
    Names of the materialized views in the schema.

    Raises:
        UnsupportedOperationError: if the database has no materialized views.
    """
    return reflection.get_materialized_view_names(bind, schema)
