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

import contextlib
import logging
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from sqlalchemy import Column, exc, inspect, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.engine.reflection import Inspector
from sqlalchemy.schema import MetaData

from spectacles.common.params import ViewOperation
from spectacles.common.utils import normalize_definition, parse_storage_parameters, parse_view_column_names
from spectacles.sql.compiler import check_materialized_views_supported
from spectacles.sql.schema import MaterializedView, MaterializedViewOptions, View


logger = logging.getLogger(__name__)


def get_inspector(bind: Any) -> Inspector:
    """Return an Inspector for a Connection or Engine, or the Inspector itself."""
    if isinstance(bind, Inspector):
        return bind
    return inspect(bind)


@contextlib.contextmanager
def _connect(bind: Any) -> Iterator[Connection]:
    if isinstance(bind, Inspector):
        bind = bind.bind
    if isinstance(bind, Engine):
        with bind.connect() as connection:
            yield connection
    else:
        yield bind


def get_view_names(bind: Any, schema: Optional[str] = None) -> List[str]:
    """
    Return the names of the plain views in a schema, sorted.

    :param bind: A Connection, Engine or Inspector.
    :param schema: The schema; defaults to the default schema if None.
    """
    return sorted(get_inspector(bind).get_view_names(schema=schema))


def get_materialized_view_names(bind: Any, schema: Optional[str] = None) -> List[str]:
    """
    Return the names of the materialized views in a schema, sorted.

    :raises: UnsupportedOperationError if the database has no materialized views.
    """
    check_materialized_views_supported(bind, ViewOperation.LIST_MATERIALIZED_VIEWS)
    inspector = get_inspector(bind)
    return sorted(inspector.get_materialized_view_names(schema=schema))


def get_view_definition(bind: Any, view_name: str, schema: Optional[str] = None) -> Optional[str]:
    """
    Return the SELECT text of a view (or materialized view), without the
    ``CREATE ... VIEW <name> AS`` prefix some databases report, and without
    a trailing semicolon.
    """
    definition = get_inspector(bind).get_view_definition(view_name, schema=schema)
    return normalize_definition(definition)


def _reflect_definition(
    inspector: Inspector, view_name: str, schema: Optional[str]
) -> Tuple[str, Optional[List[str]]]:
    """The normalized definition and the column list of the CREATE statement, if the database reports one."""
    raw = inspector.get_view_definition(view_name, schema=schema)
    if raw is None:
        raise exc.NoSuchTableError(view_name)
    return normalize_definition(raw), parse_view_column_names(raw)


def _postgresql_materialized_view_options(
    connection: Connection, view_name: str, schema: Optional[str]
) -> MaterializedViewOptions:
    row = connection.execute(
        text(
            "SELECT c.reloptions, m.ispopulated "
            "FROM pg_catalog.pg_class c "
            "JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace "
            "JOIN pg_catalog.pg_matviews m ON m.schemaname = n.nspname AND m.matviewname = c.relname "
            "WHERE c.relname = :name AND n.nspname = coalesce(:schema, current_schema())"
        ),
        {"name": view_name, "schema": schema},
    ).first()
    if row is None:
        raise exc.NoSuchTableError(view_name)
    return MaterializedViewOptions(
        populate_data=bool(row.ispopulated),
        storage_parameters=parse_storage_parameters(row.reloptions),
    )


_materialized_view_options_readers: Dict[
    str, Callable[[Connection, str, Optional[str]], MaterializedViewOptions]
] = {
    "postgresql": _postgresql_materialized_view_options,
}


def get_materialized_view_options(
    bind: Any, view_name: str, schema: Optional[str] = None
) -> MaterializedViewOptions:
    """
    Return the storage parameters and populated state of a materialized view.

    :raises: UnsupportedOperationError if the database has no materialized views.
    :raises: NoSuchTableError if the materialized view does not exist.
    """
    check_materialized_views_supported(bind, ViewOperation.LIST_MATERIALIZED_VIEWS)
    inspector = get_inspector(bind)
    dialect = inspector.dialect

    reader = _materialized_view_options_readers.get(dialect.name)
    if reader is None:
        logger.warning("Reading materialized view options is not implemented for the %r dialect, "
                       "using the default options for %s", dialect.name, view_name)
        return MaterializedViewOptions()
    with _connect(inspector) as connection:
        return reader(connection, view_name, schema)


_CANONICAL_VIEW_NAME = "spectacles_canonical_view"


def _postgresql_canonical_definition(connection: Connection, sql: str) -> Optional[str]:
    # the temporary view only lives inside the savepoint
    savepoint = connection.begin_nested()
    try:
        connection.exec_driver_sql(
            f"CREATE TEMPORARY VIEW {_CANONICAL_VIEW_NAME} AS {sql}",
            execution_options={"no_parameters": True},
        )
        return connection.execute(
            text("SELECT pg_get_viewdef(CAST(:name AS regclass))"),
            {"name": _CANONICAL_VIEW_NAME},
        ).scalar()
    finally:
        savepoint.rollback()


_definition_canonicalizers: Dict[str, Callable[[Connection, str], Optional[str]]] = {
    "postgresql": _postgresql_canonical_definition,
}


def get_canonical_definition(bind: Any, sql: str) -> Optional[str]:
    """
    Return a view query as the database itself would report it, or None
    if the dialect can't tell.

    PostgreSQL stores a parsed view, and reports it with its own layout,
    parentheses and aliases. The query is created as a temporary view and
    read back, in a savepoint that is rolled back.
    """
    inspector = get_inspector(bind)
    canonicalizer = _definition_canonicalizers.get(inspector.dialect.name)
    if canonicalizer is None:
        return None
    with _connect(inspector) as connection:
        try:
            definition = canonicalizer(connection, sql)
        except exc.DBAPIError as e:
            logger.warning("Can't read back the view definition from the %r database, "
                           "comparing it as text: %s", inspector.dialect.name, e)
            return None
    return normalize_definition(definition)


def _reflect_columns(inspector: Inspector, view_name: str, schema: Optional[str]) -> List[Column]:
    try:
        reflected = inspector.get_columns(view_name, schema=schema)
    except NotImplementedError:
        logger.warning("Columns of view %s can't be reflected by the %r dialect",
                       view_name, inspector.dialect.name)
        return []
    return [Column(col["name"], col["type"]) for col in reflected]


def reflect_view(bind: Any, view_name: str, schema: Optional[str] = None,
                 metadata: Optional[MetaData] = None) -> View:
    """Load a View object, with its definition and columns, from the database."""
    inspector = get_inspector(bind)
    definition, column_names = _reflect_definition(inspector, view_name, schema)
    columns = _reflect_columns(inspector, view_name, schema)
    return View(view_name, metadata if metadata is not None else MetaData(), *columns,
                definition=definition, schema=schema, column_names=column_names)


def reflect_materialized_view(bind: Any, view_name: str, schema: Optional[str] = None,
                              metadata: Optional[MetaData] = None) -> MaterializedView:
    """Load a MaterializedView object, with its definition, columns and options, from the database."""
    inspector = get_inspector(bind)
    options = get_materialized_view_options(inspector, view_name, schema)
    definition, column_names = _reflect_definition(inspector, view_name, schema)
    columns = _reflect_columns(inspector, view_name, schema)
    return MaterializedView(view_name, metadata if metadata is not None else MetaData(), *columns,
                            definition=definition, schema=schema, column_names=column_names,
                            storage=options.storage_parameters, data=options.populate_data)
