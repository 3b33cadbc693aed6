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

import logging
from typing import Any, Callable, List, Optional

from alembic.autogenerate import renderers
from alembic.autogenerate.api import AutogenContext

from spectacles.sql.query import QueryType, resolve_query

from .ops import (
    CreateMaterializedViewOp,
    CreateViewOp,
    DropMaterializedViewOp,
    DropViewOp,
    RefreshMaterializedViewOp,
)


logger = logging.getLogger("spectacles.alembic.render")


def _render_definition(
    autogen_context: AutogenContext,
    view_name: str,
    definition: Optional[QueryType],
    block: Optional[Callable[[], Any]] = None,
) -> str:
    """
    Render the view query as a string literal.
    Selectables (and blocks) are compiled to SQL text with the dialect of the autogenerate context.
    """
    if isinstance(definition, str):
        return repr(definition)
    dialect = getattr(autogen_context, "dialect", None)
    return repr(resolve_query(view_name, definition, block, dialect=dialect))


def _schema_arg(args: List[str], schema: Optional[str]) -> None:
    if schema:
        args.append(f"schema={schema!r}")


def _column_names_arg(args: List[str], column_names: Optional[List[str]]) -> None:
    if column_names:
        args.append(f"column_names={list(column_names)!r}")


@renderers.dispatch_for(CreateViewOp)
def _create_view(autogen_context: AutogenContext, op: CreateViewOp) -> str:
    args = [
        f"{op.view_name!r}",
        _render_definition(autogen_context, op.view_name, op.definition, op.block),
    ]
    _schema_arg(args, op.schema)
    _column_names_arg(args, op.column_names)
    if op.or_replace:
        args.append("or_replace=True")
    if op.if_not_exists:
        args.append("if_not_exists=True")

    call = f"op.create_view({', '.join(args)})"
    logger.debug("render create_view: %s", call)
    return call


@renderers.dispatch_for(DropViewOp)
def _drop_view(autogen_context: AutogenContext, op: DropViewOp) -> str:
    args = [f"{op.view_name!r}"]
    _schema_arg(args, op.schema)
    if op.if_exists:
        args.append("if_exists=True")
    if op.cascade:
        args.append("cascade=True")

    call = f"op.drop_view({', '.join(args)})"
    logger.debug("render drop_view: %s", call)
    return call


@renderers.dispatch_for(CreateMaterializedViewOp)
def _create_materialized_view(autogen_context: AutogenContext, op: CreateMaterializedViewOp) -> str:
    args = [
        f"{op.view_name!r}",
        _render_definition(autogen_context, op.view_name, op.definition, op.block),
    ]
    _schema_arg(args, op.schema)
    _column_names_arg(args, op.column_names)
    # default options (no storage parameters, populated) are omitted
    if op.storage:
        args.append(f"storage={op.storage!r}")
    if not op.data:
        args.append("data=False")
    if op.force:
        args.append("force=True")
    if op.if_not_exists:
        args.append("if_not_exists=True")

    call = f"op.create_materialized_view({', '.join(args)})"
    logger.debug("render create_materialized_view: %s", call)
    return call


@renderers.dispatch_for(DropMaterializedViewOp)
def _drop_materialized_view(autogen_context: AutogenContext, op: DropMaterializedViewOp) -> str:
    args = [f"{op.view_name!r}"]
    _schema_arg(args, op.schema)
    if op.if_exists:
        args.append("if_exists=True")
    if op.cascade:
        args.append("cascade=True")

    call = f"op.drop_materialized_view({', '.join(args)})"
    logger.debug("render drop_materialized_view: %s", call)
    return call


@renderers.dispatch_for(RefreshMaterializedViewOp)
def _refresh_materialized_view(autogen_context: AutogenContext, op: RefreshMaterializedViewOp) -> str:
    args = [f"{op.view_name!r}"]
    _schema_arg(args, op.schema)
    if op.concurrently:
        args.append("concurrently=True")
    if not op.data:
        args.append("data=False")

    call = f"op.refresh_materialized_view({', '.join(args)})"
    logger.debug("render refresh_materialized_view: %s", call)
    return call
