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

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from alembic.operations import Operations, ops
from sqlalchemy import MetaData, Table

from spectacles.common.params import PLACEHOLDER_DEFINITION, TableObjectInfoKey
from spectacles.sql.query import BuilderObject, LiteralText, QueryType, evaluate_deferred
from spectacles.sql.schema import MaterializedView, View


logger = logging.getLogger(__name__)


def _definition_of(view: Table) -> Optional[QueryType]:
    """The SQL text or the selectable a View was defined with."""
    if isinstance(view, View):
        source = view.query_source
    else:
        source = evaluate_deferred(view.info.get(TableObjectInfoKey.QUERY_SOURCE))
    if isinstance(source, LiteralText):
        return source.text
    if isinstance(source, BuilderObject):
        return source.element
    return None


def _column_names_of(view: Table) -> Optional[List[str]]:
    return view.info.get(TableObjectInfoKey.COLUMN_NAMES)


def _options_of(view: Table) -> Dict[str, Any]:
    return {
        "storage": dict(view.info.get(TableObjectInfoKey.STORAGE) or {}),
        "data": view.info.get(TableObjectInfoKey.DATA, True),
    }


@Operations.register_operation("create_view")
class CreateViewOp(ops.MigrateOperation):
    def __init__(
        self,
        view_name: str,
        definition: Optional[QueryType] = None,
        schema: Optional[str] = None,
        block: Optional[Callable[[], Any]] = None,
        or_replace: bool = False,
        if_not_exists: bool = False,
        column_names: Optional[Sequence[str]] = None,
    ) -> None:
        self.view_name = view_name
        self.definition = definition
        self.schema = schema
        self.block = block
        self.column_names = list(column_names) if column_names else None
        self.or_replace = or_replace
        self.if_not_exists = if_not_exists

    def to_view(self, metadata: Optional[MetaData] = None) -> View:
        return View(
            self.view_name,
            metadata if metadata is not None else MetaData(),
            definition=self.definition,
            block=self.block,
            schema=self.schema,
            column_names=self.column_names,
        )

    @classmethod
    def from_view(cls, view: Table) -> "CreateViewOp":
        """Create Op from a View object (which is a Table)."""
        return cls(
            view.name,
            definition=_definition_of(view),
            schema=view.schema,
            column_names=_column_names_of(view),
        )

    @classmethod
    def create_view(
        cls,
        operations: Operations,
        view_name: str,
        definition: Optional[QueryType] = None,
        schema: Optional[str] = None,
        block: Optional[Callable[[], Any]] = None,
        or_replace: bool = False,
        if_not_exists: bool = False,
        column_names: Optional[Sequence[str]] = None,
    ) -> None:
        """Issue a CREATE VIEW statement.

        ``definition`` is a SQL string or a selectable, ``block`` a callable
        returning one of them.
        """
        op = cls(
            view_name,
            definition,
            schema=schema,
            block=block,
            or_replace=or_replace,
            if_not_exists=if_not_exists,
            column_names=column_names,
        )
        return operations.invoke(op)

    def reverse(self) -> "DropViewOp":
        return DropViewOp(
            self.view_name,
            schema=self.schema,
            existing_definition=self.definition,
            existing_column_names=self.column_names,
        )

    def __str__(self) -> str:
        return (
            f"CreateViewOp(view_name={self.view_name!r}, schema={self.schema!r}, "
            f"definition=({self.definition!r}), or_replace={self.or_replace}, "
            f"if_not_exists={self.if_not_exists}, column_names={self.column_names!r})"
        )


@Operations.register_operation("drop_view")
class DropViewOp(ops.MigrateOperation):
    def __init__(
        self,
        view_name: str,
        schema: Optional[str] = None,
        if_exists: bool = False,
        cascade: bool = False,
        existing_definition: Optional[QueryType] = None,
        existing_column_names: Optional[Sequence[str]] = None,
    ) -> None:
        self.view_name = view_name
        self.schema = schema
        self.if_exists = if_exists
        self.cascade = cascade
        self.existing_definition = existing_definition
        self.existing_column_names = list(existing_column_names) if existing_column_names else None

    def to_view(self, metadata: Optional[MetaData] = None) -> View:
        """Create a View object for the DROP VIEW statement, only its name and schema are used."""
        return View(
            self.view_name,
            metadata if metadata is not None else MetaData(),
            definition=PLACEHOLDER_DEFINITION,
            schema=self.schema,
        )

    @classmethod
    def from_view(cls, view: Table) -> "DropViewOp":
        return cls(
            view.name,
            schema=view.schema,
            existing_definition=_definition_of(view),
            existing_column_names=_column_names_of(view),
        )

    @classmethod
    def drop_view(
        cls,
        operations: Operations,
        view_name: str,
        schema: Optional[str] = None,
        if_exists: bool = False,
        cascade: bool = False,
    ) -> None:
        """Issue a DROP VIEW statement."""
        op = cls(view_name, schema=schema, if_exists=if_exists, cascade=cascade)
        return operations.invoke(op)

    def reverse(self) -> CreateViewOp:
        if self.existing_definition is None:
            raise NotImplementedError("Cannot reverse a DropViewOp without the view's definition.")
        return CreateViewOp(
            self.view_name,
            definition=self.existing_definition,
            schema=self.schema,
            column_names=self.existing_column_names,
        )

    def __str__(self) -> str:
        return (
            f"DropViewOp(view_name={self.view_name!r}, schema={self.schema!r}, "
            f"if_exists={self.if_exists}, cascade={self.cascade}, "
            f"existing_definition=({self.existing_definition!r}))"
        )


@Operations.register_operation("create_materialized_view")
class CreateMaterializedViewOp(CreateViewOp):
    """
    Create a materialized view.

    Inherits from CreateViewOp to reuse view_name, definition, schema and block.
    Adds the storage parameters and the data population flag.
    """

    def __init__(
        self,
        view_name: str,
        definition: Optional[QueryType] = None,
        schema: Optional[str] = None,
        block: Optional[Callable[[], Any]] = None,
        storage: Optional[Mapping[str, Any]] = None,
        data: bool = True,
        force: bool = False,
        if_not_exists: bool = False,
        column_names: Optional[Sequence[str]] = None,
    ) -> None:
        super().__init__(
            view_name,
            definition,
            schema=schema,
            block=block,
            if_not_exists=if_not_exists,
            column_names=column_names,
        )
        self.storage = dict(storage or {})
        self.data = data
        self.force = force

    def to_mv(self, metadata: Optional[MetaData] = None) -> MaterializedView:
        """Convert Op to MaterializedView object (for toimpl)."""
        return MaterializedView(
            self.view_name,
            metadata if metadata is not None else MetaData(),
            definition=self.definition,
            block=self.block,
            schema=self.schema,
            column_names=self.column_names,
            storage=self.storage,
            data=self.data,
        )

    @classmethod
    def from_mv(cls, mv: Table) -> "CreateMaterializedViewOp":
        """Create Op from MaterializedView Table object."""
        return cls(
            mv.name,
            definition=_definition_of(mv),
            schema=mv.schema,
            column_names=_column_names_of(mv),
            **_options_of(mv),
        )

    @classmethod
    def create_materialized_view(
        cls,
        operations: Operations,
        view_name: str,
        definition: Optional[QueryType] = None,
        schema: Optional[str] = None,
        block: Optional[Callable[[], Any]] = None,
        storage: Optional[Mapping[str, Any]] = None,
        data: bool = True,
        force: bool = False,
        if_not_exists: bool = False,
        column_names: Optional[Sequence[str]] = None,
    ) -> None:
        """Invoke a CREATE MATERIALIZED VIEW operation.

        ``force=True`` drops an existing materialized view of the same name first.
        """
        op = cls(
            view_name,
            definition,
            schema=schema,
            block=block,
            storage=storage,
            data=data,
            force=force,
            if_not_exists=if_not_exists,
            column_names=column_names,
        )
        return operations.invoke(op)

    def reverse(self) -> "DropMaterializedViewOp":
        return DropMaterializedViewOp(
            self.view_name,
            schema=self.schema,
            existing_definition=self.definition,
            existing_storage=self.storage,
            existing_data=self.data,
            existing_column_names=self.column_names,
        )

    def __str__(self) -> str:
        return (
            f"CreateMaterializedViewOp(view_name={self.view_name!r}, schema={self.schema!r}, "
            f"definition=({self.definition!r}), storage={self.storage!r}, data={self.data}, "
            f"force={self.force}, if_not_exists={self.if_not_exists})"
        )


@Operations.register_operation("drop_materialized_view")
class DropMaterializedViewOp(ops.MigrateOperation):
    def __init__(
        self,
        view_name: str,
        schema: Optional[str] = None,
        if_exists: bool = False,
        cascade: bool = False,
        existing_definition: Optional[QueryType] = None,
        existing_storage: Optional[Mapping[str, Any]] = None,
        existing_data: bool = True,
        existing_column_names: Optional[Sequence[str]] = None,
    ) -> None:
        self.view_name = view_name
        self.schema = schema
        self.if_exists = if_exists
        self.cascade = cascade
        self.existing_definition = existing_definition
        self.existing_storage = dict(existing_storage or {})
        self.existing_data = existing_data
        self.existing_column_names = list(existing_column_names) if existing_column_names else None

    def to_mv(self, metadata: Optional[MetaData] = None) -> MaterializedView:
        return MaterializedView(
            self.view_name,
            metadata if metadata is not None else MetaData(),
            definition=PLACEHOLDER_DEFINITION,
            schema=self.schema,
        )

    @classmethod
    def from_mv(cls, mv: Table) -> "DropMaterializedViewOp":
        options = _options_of(mv)
        return cls(
            mv.name,
            schema=mv.schema,
            existing_definition=_definition_of(mv),
            existing_storage=options["storage"],
            existing_data=options["data"],
            existing_column_names=_column_names_of(mv),
        )

    @classmethod
    def drop_materialized_view(
        cls,
        operations: Operations,
        view_name: str,
        schema: Optional[str] = None,
        if_exists: bool = False,
        cascade: bool = False,
    ) -> None:
        """Invoke a DROP MATERIALIZED VIEW operation."""
        op = cls(view_name, schema=schema, if_exists=if_exists, cascade=cascade)
        return operations.invoke(op)

    def reverse(self) -> CreateMaterializedViewOp:
        if self.existing_definition is None:
            raise NotImplementedError("Cannot reverse a DropMaterializedViewOp without the view's definition.")
        return CreateMaterializedViewOp(
            self.view_name,
            definition=self.existing_definition,
            schema=self.schema,
            storage=self.existing_storage,
            data=self.existing_data,
            column_names=self.existing_column_names,
        )

    def __str__(self) -> str:
        return (
            f"DropMaterializedViewOp(view_name={self.view_name!r}, schema={self.schema!r}, "
            f"if_exists={self.if_exists}, cascade={self.cascade}, "
            f"existing_definition=({self.existing_definition!r}))"
        )


@Operations.register_operation("refresh_materialized_view")
class RefreshMaterializedViewOp(ops.MigrateOperation):
    """Refresh a materialized view. The reverse of a refresh is the same refresh."""

    def __init__(
        self,
        view_name: str,
        schema: Optional[str] = None,
        concurrently: bool = False,
        data: bool = True,
    ) -> None:
        self.view_name = view_name
        self.schema = schema
        self.concurrently = concurrently
        self.data = data

    def to_mv(self, metadata: Optional[MetaData] = None) -> MaterializedView:
        return MaterializedView(
            self.view_name,
            metadata if metadata is not None else MetaData(),
            definition=PLACEHOLDER_DEFINITION,
            schema=self.schema,
        )

    @classmethod
    def refresh_materialized_view(
        cls,
        operations: Operations,
        view_name: str,
        schema: Optional[str] = None,
        concurrently: bool = False,
        data: bool = True,
    ) -> None:
        """Invoke a REFRESH MATERIALIZED VIEW operation."""
        op = cls(view_name, schema=schema, concurrently=concurrently, data=data)
        return operations.invoke(op)

    def reverse(self) -> "RefreshMaterializedViewOp":
        return RefreshMaterializedViewOp(
            self.view_name,
            schema=self.schema,
            concurrently=self.concurrently,
            data=self.data,
        )

    def __str__(self) -> str:
        return (
            f"RefreshMaterializedViewOp(view_name={self.view_name!r}, schema={self.schema!r}, "
            f"concurrently={self.concurrently}, data={self.data})"
        )
