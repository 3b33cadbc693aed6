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
Per-dialect generation of the view DDL statements.

Each supported backend has a `ViewDDLGenerator` subclass, registered by its
``__dialect__`` name. The DDL elements of `spectacles.sql.ddl` (and
`CreateTable` / `DropTable` of a View) are compiled through
`sqlalchemy.ext.compiler.compiles` hooks, which look up the generator of
the compiling dialect and fall back to the ``default`` one.
"""

import logging
from typing import Any, Dict, Mapping, NamedTuple, Optional, Type, Union

from sqlalchemy import exc
from sqlalchemy.engine.interfaces import Dialect
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.schema import CreateTable, DropTable, Table
from sqlalchemy.sql import sqltypes
from sqlalchemy.sql.compiler import DDLCompiler
from sqlalchemy.sql.expression import TableClause

from spectacles.common.params import DefaultDialectName, TableKind, TableObjectInfoKey, ViewOperation
from spectacles.common.utils import validate_option_key
from spectacles.exc import UnsupportedOperationError
from spectacles.sql.query import evaluate_deferred, resolve_query

from .ddl import (
    CreateMaterializedView,
    CreateView,
    DropMaterializedView,
    DropView,
    RefreshMaterializedView,
)
from .schema import MaterializedView, MaterializedViewOptions, View, get_table_kind


logger = logging.getLogger(__name__)


class ViewDefinition(NamedTuple):
    """The inputs of one DDL generation: quoted name, resolved query, MV options and the rendered column list."""
    name: str
    query: str
    options: Optional[MaterializedViewOptions] = None
    column_list: str = ""


_generators: Dict[str, Type["ViewDDLGenerator"]] = {}


def _get_dialect(dialect_or_bind: Any) -> Dialect:
    if isinstance(dialect_or_bind, Dialect):
        return dialect_or_bind
    dialect = getattr(dialect_or_bind, "dialect", None)
    if dialect is None:
        raise TypeError(f"Expected a Dialect or an object with a dialect, got {type(dialect_or_bind).__name__}")
    return dialect


def generator_class_for(dialect: Union[Dialect, str, Any]) -> Type["ViewDDLGenerator"]:
    """Return the generator class of a dialect (or dialect name), falling back to the default one."""
    name = dialect if isinstance(dialect, str) else _get_dialect(dialect).name
    return _generators.get(name, _generators[DefaultDialectName])


def supports_materialized_views(dialect_or_bind: Any) -> bool:
    """Whether the backend of the dialect (or bind) supports materialized views."""
    return generator_class_for(dialect_or_bind).supports_materialized_views


def raise_unsupported(dialect_name: str, operation: str, message: Optional[str] = None) -> None:
    error = UnsupportedOperationError(dialect_name, operation, message)
    logger.error("%s", error)
    raise error


def check_materialized_views_supported(dialect_or_bind: Any, operation: str) -> None:
    """Raise UnsupportedOperationError if the backend has no materialized views."""
    if not supports_materialized_views(dialect_or_bind):
        raise_unsupported(_get_dialect(dialect_or_bind).name, operation)


class ViewDDLGenerator:
    """
    Generates view DDL for the ``default`` dialect, i.e. standard SQL with
    no optional clauses. Subclasses enable what their backend supports.
    """
    __dialect__ = DefaultDialectName

    supports_materialized_views = False
    supports_or_replace = False
    supports_view_if_not_exists = False
    supports_materialized_view_if_not_exists = False
    supports_cascade = False
    supports_refresh_concurrently = False

    or_replace_keyword = "OR REPLACE"

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if "__dialect__" in cls.__dict__:
            _generators[cls.__dialect__] = cls

    def __init__(self, ddl_compiler: DDLCompiler) -> None:
        self.compiler = ddl_compiler
        self.dialect = ddl_compiler.dialect
        self.preparer = ddl_compiler.preparer

    def _unsupported(self, operation: str, message: Optional[str] = None) -> None:
        raise_unsupported(self.dialect.name, operation, message)

    def _check_materialized(self, operation: str) -> None:
        if not self.supports_materialized_views:
            self._unsupported(operation)

    def resolve_definition(self, table: TableClause, options: Optional[MaterializedViewOptions] = None) -> ViewDefinition:
        if isinstance(table, View):
            source = table.query_source
        else:
            source = evaluate_deferred(table.info.get(TableObjectInfoKey.QUERY_SOURCE))
        query = resolve_query(table.name, source, dialect=self.dialect)
        # percent signs are doubled for format/pyformat drivers, as DDL() does
        query = self.compiler.sql_compiler.post_process_text(query)
        return ViewDefinition(self.preparer.format_table(table), query, options, self.render_column_list(table))

    def render_column_list(self, table: TableClause) -> str:
        column_names = table.info.get(TableObjectInfoKey.COLUMN_NAMES)
        if not column_names:
            return ""
        return " (" + ", ".join(self.preparer.quote(name) for name in column_names) + ")"

    def render_option_value(self, value: Any) -> str:
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (int, float)):
            return str(value)
        return self.compiler.sql_compiler.render_literal_value(str(value), sqltypes.String())

    def render_storage_parameters(self, storage: Mapping[str, Any]) -> str:
        return ", ".join(
            f"{validate_option_key(key)} = {self.render_option_value(value)}"
            for key, value in storage.items()
        )

    def create_view(self, create: CreateView) -> str:
        if create.or_replace and not self.supports_or_replace:
            self._unsupported(ViewOperation.CREATE_VIEW, f"CREATE {self.or_replace_keyword} VIEW is not supported "
                                                         f"by the {self.dialect.name!r} dialect")
        if create.if_not_exists and not self.supports_view_if_not_exists:
            self._unsupported(ViewOperation.CREATE_VIEW, f"CREATE VIEW IF NOT EXISTS is not supported "
                                                         f"by the {self.dialect.name!r} dialect")
        if create.or_replace and create.if_not_exists:
            raise exc.CompileError("or_replace and if_not_exists can't be used together")

        definition = self.resolve_definition(create.element)
        text = "CREATE "
        if create.or_replace:
            text += f"{self.or_replace_keyword} "
        text += "VIEW "
        if create.if_not_exists:
            text += "IF NOT EXISTS "
        text += f"{definition.name}{definition.column_list} AS {definition.query}"

        logger.debug("Compiled SQL for CreateView: \n%s", text)
        return text

    def drop_view(self, drop: DropView) -> str:
        if drop.cascade and not self.supports_cascade:
            self._unsupported(ViewOperation.DROP_VIEW, f"DROP VIEW ... CASCADE is not supported "
                                                       f"by the {self.dialect.name!r} dialect")
        text = "DROP VIEW "
        if drop.if_exists:
            text += "IF EXISTS "
        text += self.preparer.format_table(drop.element)
        if drop.cascade:
            text += " CASCADE"

        logger.debug("Compiled SQL for DropView: \n%s", text)
        return text

    def create_materialized_view(self, create: CreateMaterializedView) -> str:
        self._check_materialized(ViewOperation.CREATE_MATERIALIZED_VIEW)
        if create.if_not_exists and not self.supports_materialized_view_if_not_exists:
            self._unsupported(ViewOperation.CREATE_MATERIALIZED_VIEW,
                              f"CREATE MATERIALIZED VIEW IF NOT EXISTS is not supported "
                              f"by the {self.dialect.name!r} dialect")

        table = create.element
        if isinstance(table, MaterializedView):
            options = table.options
        else:
            options = MaterializedViewOptions.from_kwargs(
                table.info.get(TableObjectInfoKey.STORAGE), table.info.get(TableObjectInfoKey.DATA))
        definition = self.resolve_definition(table, options)

        text = "CREATE MATERIALIZED VIEW "
        if create.if_not_exists:
            text += "IF NOT EXISTS "
        text += definition.name + definition.column_list
        if options.storage_parameters:
            text += f" WITH ({self.render_storage_parameters(options.storage_parameters)})"
        text += f" AS {definition.query}"
        text += " WITH DATA" if options.populate_data else " WITH NO DATA"

        logger.debug("Compiled SQL for CreateMaterializedView: \n%s", text)
        return text

    def drop_materialized_view(self, drop: DropMaterializedView) -> str:
        self._check_materialized(ViewOperation.DROP_MATERIALIZED_VIEW)
        if drop.cascade and not self.supports_cascade:
            self._unsupported(ViewOperation.DROP_MATERIALIZED_VIEW)
        text = "DROP MATERIALIZED VIEW "
        if drop.if_exists:
            text += "IF EXISTS "
        text += self.preparer.format_table(drop.element)
        if drop.cascade:
            text += " CASCADE"

        logger.debug("Compiled SQL for DropMaterializedView: \n%s", text)
        return text

    def refresh_materialized_view(self, refresh: RefreshMaterializedView) -> str:
        self._check_materialized(ViewOperation.REFRESH_MATERIALIZED_VIEW)
        if refresh.concurrently and not self.supports_refresh_concurrently:
            self._unsupported(ViewOperation.REFRESH_MATERIALIZED_VIEW,
                              f"REFRESH MATERIALIZED VIEW CONCURRENTLY is not supported "
                              f"by the {self.dialect.name!r} dialect")
        if refresh.concurrently and not refresh.with_data:
            raise exc.CompileError("CONCURRENTLY and WITH NO DATA can't be used together")

        text = "REFRESH MATERIALIZED VIEW "
        if refresh.concurrently:
            text += "CONCURRENTLY "
        text += self.preparer.format_table(refresh.element)
        if not refresh.with_data:
            text += " WITH NO DATA"

        logger.debug("Compiled SQL for RefreshMaterializedView: \n%s", text)
        return text


_generators[DefaultDialectName] = ViewDDLGenerator


class PostgreSQLViewDDLGenerator(ViewDDLGenerator):
    __dialect__ = "postgresql"

    supports_materialized_views = True
    supports_or_replace = True
    supports_materialized_view_if_not_exists = True
    supports_cascade = True
    supports_refresh_concurrently = True


class MySQLViewDDLGenerator(ViewDDLGenerator):
    __dialect__ = "mysql"

    supports_or_replace = True


class MariaDBViewDDLGenerator(MySQLViewDDLGenerator):
    __dialect__ = "mariadb"


class SQLiteViewDDLGenerator(ViewDDLGenerator):
    __dialect__ = "sqlite"

    supports_view_if_not_exists = True


class MSSQLViewDDLGenerator(ViewDDLGenerator):
    __dialect__ = "mssql"

    supports_or_replace = True
    or_replace_keyword = "OR ALTER"


def _generator(compiler: DDLCompiler) -> ViewDDLGenerator:
    return generator_class_for(compiler.dialect)(compiler)


@compiles(CreateView)
def _compile_create_view(create: CreateView, compiler: DDLCompiler, **kw: Any) -> str:
    return _generator(compiler).create_view(create)


@compiles(DropView)
def _compile_drop_view(drop: DropView, compiler: DDLCompiler, **kw: Any) -> str:
    return _generator(compiler).drop_view(drop)


@compiles(CreateMaterializedView)
def _compile_create_materialized_view(create: CreateMaterializedView, compiler: DDLCompiler, **kw: Any) -> str:
    return _generator(compiler).create_materialized_view(create)


@compiles(DropMaterializedView)
def _compile_drop_materialized_view(drop: DropMaterializedView, compiler: DDLCompiler, **kw: Any) -> str:
    return _generator(compiler).drop_materialized_view(drop)


@compiles(RefreshMaterializedView)
def _compile_refresh_materialized_view(refresh: RefreshMaterializedView, compiler: DDLCompiler, **kw: Any) -> str:
    return _generator(compiler).refresh_materialized_view(refresh)


@compiles(CreateTable)
def _compile_create_table(create: CreateTable, compiler: DDLCompiler, **kw: Any) -> str:
    """
    `MetaData.create_all` emits CreateTable for every table, views included.
    Views are dispatched by `table.info['table_kind']`, other tables compile as usual.
    """
    table: Table = create.element
    table_kind = get_table_kind(table)
    if_not_exists = getattr(create, "if_not_exists", False)
    if table_kind == TableKind.VIEW:
        return _generator(compiler).create_view(CreateView(table, if_not_exists=if_not_exists))
    elif table_kind == TableKind.MATERIALIZED_VIEW:
        return _generator(compiler).create_materialized_view(
            CreateMaterializedView(table, if_not_exists=if_not_exists))
    return compiler.visit_create_table(create, **kw)


@compiles(DropTable)
def _compile_drop_table(drop: DropTable, compiler: DDLCompiler, **kw: Any) -> str:
    table: Table = drop.element
    table_kind = get_table_kind(table)
    if_exists = getattr(drop, "if_exists", False)
    if table_kind == TableKind.VIEW:
        return _generator(compiler).drop_view(DropView(table, if_exists=if_exists))
    elif table_kind == TableKind.MATERIALIZED_VIEW:
        return _generator(compiler).drop_materialized_view(DropMaterializedView(table, if_exists=if_exists))
    return compiler.visit_drop_table(drop, **kw)
