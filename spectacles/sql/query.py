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
Resolution of a view's query source into SQL text.

A view can be defined by:
    - a literal SQL string: ``"SELECT * FROM products"``
    - a SQLAlchemy selectable (or anything with ``__clause_element__``,
      such as an ORM ``Query``): ``select(products)``
    - a block, i.e. a callable taking no arguments and returning one of
      the above: ``lambda: select(products)``

The three forms are represented by `LiteralText`, `BuilderObject` and
`Deferred`, and turned into SQL only by `compile_query`.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Any, Callable, Optional, Union

from sqlalchemy.engine.interfaces import Dialect
from sqlalchemy.sql import ClauseElement

from spectacles.exc import MissingQueryError


logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class LiteralText:
    """Literal SQL text of the view query."""
    text: str


@dataclasses.dataclass(frozen=True)
class BuilderObject:
    """A query builder object, converted to SQL by its own compile call."""
    element: Any


@dataclasses.dataclass(frozen=True)
class Deferred:
    """A block, invoked with no arguments, returning SQL text or a query builder object."""
    block: Callable[[], Any]


QuerySource = Union[LiteralText, BuilderObject, Deferred]
QueryType = Union[str, ClauseElement, QuerySource]


def is_query_builder(obj: Any) -> bool:
    return isinstance(obj, ClauseElement) or hasattr(obj, "__clause_element__")


def to_query_source(query: Optional[Any] = None, block: Optional[Callable[[], Any]] = None) -> Optional[QuerySource]:
    """
    Classify a view query source. An explicit query wins over the block.

    Returns:
        The QuerySource, or None if neither a query nor a block is given.

    Raises:
        TypeError: if the query is neither a string nor a query builder object,
            or if the block is not callable.
    """
    if query is not None:
        if isinstance(query, (LiteralText, BuilderObject, Deferred)):
            return query
        if isinstance(query, str):
            return LiteralText(query)
        if is_query_builder(query):
            return BuilderObject(query)
        raise TypeError(
            f"View query must be a SQL string or a selectable, got {type(query).__name__}"
        )
    if block is not None:
        if not callable(block):
            raise TypeError(f"View block must be callable, got {type(block).__name__}")
        return Deferred(block)
    return None


def evaluate_deferred(source: Optional[QuerySource]) -> Optional[QuerySource]:
    """Invoke a Deferred block once and classify its result. Other sources are returned as they are."""
    if not isinstance(source, Deferred):
        return source
    result = source.block()
    if result is None:
        return None
    evaluated = to_query_source(result)
    if isinstance(evaluated, Deferred):
        raise TypeError("View block must return a SQL string or a selectable, not another block")
    return evaluated


def compile_query(source: Optional[QuerySource], dialect: Optional[Dialect] = None) -> str:
    """
    Turn a query source into SQL text.

    Query builder objects are compiled once, with literal binds, for the
    given dialect (or the default string dialect). The result is plain SQL:
    percent signs doubled for a ``format``/``pyformat`` driver are undone,
    DDL compilation escapes them again for the driver.
    """
    source = evaluate_deferred(source)
    if source is None:
        return ""
    if isinstance(source, LiteralText):
        return source.text

    element = source.element
    if not isinstance(element, ClauseElement):
        element = element.__clause_element__()
    compiled = element.compile(dialect=dialect, compile_kwargs={"literal_binds": True})
    sql = str(compiled)
    if dialect is not None and dialect.paramstyle in ("format", "pyformat"):
        sql = sql.replace("%%", "%")
    return sql


def resolve_query(
    view_name: Optional[str],
    query: Optional[QueryType] = None,
    block: Optional[Callable[[], Any]] = None,
    dialect: Optional[Dialect] = None,
) -> str:
    """
    Resolve a view definition to exactly one non-empty SQL string.

    Args:
        view_name: Name of the view, only used in the error message.
        query: SQL string, selectable, or an already classified QuerySource.
        block: Callable returning a SQL string or a selectable, used when no query is given.
        dialect: Dialect used to compile selectables.

    Raises:
        MissingQueryError: if no source is given, or it resolves to empty SQL.
    """
    source = to_query_source(query, block)
    if source is None:
        raise MissingQueryError(view_name)
    sql = compile_query(source, dialect)
    if not sql or not sql.strip():
        raise MissingQueryError(view_name)
    logger.debug("resolved query of view %s: %s", view_name, sql)
    return sql
