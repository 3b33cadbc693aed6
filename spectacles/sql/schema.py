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

import dataclasses
import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

from sqlalchemy import Column, Table, event
from sqlalchemy.schema import MetaData
from sqlalchemy.sql import ClauseElement
from sqlalchemy.sql.sqltypes import NullType
from sqlalchemy.sql.util import find_tables

from spectacles.common.params import TableKind, TableObjectInfoKey
from spectacles.common.utils import validate_option_key
from spectacles.exc import MissingQueryError
from spectacles.sql.query import (
    BuilderObject,
    Deferred,
    QuerySource,
    QueryType,
    compile_query,
    evaluate_deferred,
    to_query_source,
)


logger = logging.getLogger(__name__)


ColumnDefinition = Union[Column, str]


@dataclasses.dataclass(frozen=True)
class MaterializedViewOptions:
    """
    Options of a materialized view.

    Attributes:
        populate_data: Whether the view is populated on creation (``WITH DATA``).
            Defaults to True, also when no options are given at all.
        storage_parameters: Storage parameters, such as ``{'fillfactor': 50}``.
    """
    populate_data: bool = True
    storage_parameters: Mapping[str, Any] = dataclasses.field(default_factory=dict)

    @classmethod
    def from_kwargs(cls, storage: Optional[Mapping[str, Any]] = None, data: Optional[bool] = None) -> "MaterializedViewOptions":
        return cls(
            populate_data=True if data is None else bool(data),
            storage_parameters=dict(storage or {}),
        )

    @property
    def is_default(self) -> bool:
        return self.populate_data and not self.storage_parameters


def get_table_kind(table: Table) -> str:
    return table.info.get(TableObjectInfoKey.TABLE_KIND, TableKind.TABLE)


def is_view(table: Table) -> bool:
    """Whether the table object represents a view or a materialized view."""
    return get_table_kind(table) in (TableKind.VIEW, TableKind.MATERIALIZED_VIEW)


class View(Table):
    """Represents a View object."""

    def __init__(
        self,
        name: str,
        metadata: MetaData,
        *args,
        definition: Optional[QueryType] = None,
        block: Optional[Callable[[], Any]] = None,
        schema: Optional[str] = None,
        comment: Optional[str] = None,
        columns: Optional[List[ColumnDefinition]] = None,
        depends_on: Optional[Iterable[Table]] = None,
        column_names: Optional[Iterable[str]] = None,
        keep_existing: bool = False,
        extend_existing: bool = False,
        _no_init: bool = True,
        **kwargs: Any,
    ) -> None:
        """
        Create a View object.

        Args:
            name: Name of the view
            metadata: MetaData object to bind the view to
            *args: Column objects (optional). When not given and the definition
                is a selectable, the columns are taken from the selectable,
                so that the view can be queried like a table.
            definition: SQL string or SQLAlchemy selectable defining the view query.
            block: Callable returning a SQL string or a selectable. It is used
                only when `definition` is not given, and invoked once, on first use.
            schema: Schema name (optional)
            comment: View comment (optional)
            columns: Column objects or plain column names (optional)
            column_names: Column list of the view, rendered as
                ``CREATE VIEW name (a, b) AS ...`` (optional). Without Column
                objects, the view gets untyped columns of these names.
            depends_on: Tables the view reads from. Needed for `MetaData.create_all`
                ordering when the definition is a string or a block; for a
                selectable, the tables are found automatically.
            keep_existing: When True, return the existing View if it's already in the MetaData.
            extend_existing: When True, update the existing View with the given arguments.

        Examples:
            # String definition
            View('v1', metadata, definition='SELECT * FROM users')

            # Selectable definition
            View('active_users', metadata, definition=select(users).where(users.c.active))

            # Deferred definition
            View('v1', metadata, block=lambda: select(users.c.id), depends_on=[users])

        Notes:
            - It must not raise error in the constructor, the `after_parent_attach`
              event validates the definition instead.
        """
        # Follow Table's pattern: skip initialization if _no_init=True
        if _no_init:
            return

        view_info: Dict[str, Any] = {TableObjectInfoKey.TABLE_KIND: TableKind.VIEW}
        view_info.update(self._process_definition(definition, block))
        if column_names is not None:
            view_info[TableObjectInfoKey.COLUMN_NAMES] = list(column_names)

        object_info = kwargs.setdefault("info", {})
        object_info.update(view_info)

        args = list(args) + self._normalize_columns(columns, object_info)
        if not any(isinstance(arg, Column) for arg in args):
            if column_names is not None:
                args.extend(Column(name, NullType()) for name in view_info[TableObjectInfoKey.COLUMN_NAMES])
            else:
                args.extend(self._columns_from_source(object_info.get(TableObjectInfoKey.QUERY_SOURCE)))

        super().__init__(name, metadata, *args, schema=schema, comment=comment,
                         keep_existing=keep_existing, extend_existing=extend_existing,
                         _no_init=False, **kwargs)

        for table in depends_on or ():
            self.add_is_dependent_on(table)

    def _init_existing(self, *args, **kwargs):
        """
        Override Table._init_existing to handle View-specific parameters.

        This is called when extend_existing=True and the view already exists in metadata.
        """
        definition = kwargs.pop("definition", None)
        block = kwargs.pop("block", None)
        columns = kwargs.pop("columns", None)
        depends_on = kwargs.pop("depends_on", None)
        column_names = kwargs.pop("column_names", None)

        if definition is not None or block is not None:
            self.info.pop(TableObjectInfoKey.INVALID_DEFINITION, None)
            self.info.update(self._process_definition(definition, block))
        if column_names is not None:
            self.info[TableObjectInfoKey.COLUMN_NAMES] = list(column_names)
        if columns:
            args = args + tuple(self._normalize_columns(columns, self.info))

        super()._init_existing(*args, **kwargs)

        for table in depends_on or ():
            self.add_is_dependent_on(table)

    @staticmethod
    def _process_definition(definition: Optional[QueryType], block: Optional[Callable[[], Any]]) -> Dict[str, Any]:
        """
        Classify the definition and return the view_info dict.
        An unsupported definition type is recorded, not raised, and reported by `validate_definition`.
        """
        try:
            source = to_query_source(definition, block)
        except TypeError as e:
            return {TableObjectInfoKey.QUERY_SOURCE: None, TableObjectInfoKey.INVALID_DEFINITION: str(e)}
        return {TableObjectInfoKey.QUERY_SOURCE: source}

    @staticmethod
    def _normalize_columns(columns: Optional[List[ColumnDefinition]], info: Dict[str, Any]) -> List[Column]:
        result = []
        for col_def in columns or ():
            if isinstance(col_def, Column):
                result.append(col_def)
            elif isinstance(col_def, str):
                result.append(Column(col_def, NullType()))
            else:
                info.setdefault(TableObjectInfoKey.INVALID_COLUMNS, []).append(col_def)
        return result

    @staticmethod
    def _columns_from_source(source: Optional[QuerySource]) -> List[Column]:
        """Columns of a selectable definition, so the view can be used in queries."""
        if not isinstance(source, BuilderObject):
            return []
        selected = getattr(source.element, "selected_columns", None)
        if selected is None:
            return []
        result = []
        for col in selected:
            name = getattr(col, "name", None)
            # anonymous labels render as "%(<id> <name>)s"
            if isinstance(name, str) and "%(" not in name:
                result.append(Column(name, col.type))
        return result

    def _track_dependencies(self, source: Optional[QuerySource]) -> None:
        if not isinstance(source, BuilderObject) or not isinstance(source.element, ClauseElement):
            return
        for table in find_tables(source.element):
            if isinstance(table, Table) and table is not self and table.metadata is self.metadata:
                self.add_is_dependent_on(table)

    @property
    def query_source(self) -> Optional[QuerySource]:
        """The query source. A block is invoked on first access, and its result kept."""
        source = self.info.get(TableObjectInfoKey.QUERY_SOURCE)
        if isinstance(source, Deferred):
            source = evaluate_deferred(source)
            self.info[TableObjectInfoKey.QUERY_SOURCE] = source
            self._track_dependencies(source)
        return source

    @property
    def definition(self) -> str:
        """The view query as SQL text, compiled with the default dialect."""
        return compile_query(self.query_source)

    @property
    def selectable(self) -> Optional[ClauseElement]:
        """Get the original selectable if the view was defined by one."""
        source = self.query_source
        return source.element if isinstance(source, BuilderObject) else None

    @property
    def column_names(self) -> Optional[List[str]]:
        """The column list rendered in the CREATE statement, if one was given."""
        return self.info.get(TableObjectInfoKey.COLUMN_NAMES)


@event.listens_for(View, "after_parent_attach")
def validate_definition(view: View, metadata: MetaData) -> None:
    if TableObjectInfoKey.INVALID_DEFINITION in view.info:
        raise TypeError(view.info[TableObjectInfoKey.INVALID_DEFINITION])
    source = view.info.get(TableObjectInfoKey.QUERY_SOURCE)
    if source is None:
        raise MissingQueryError(view.name)
    if TableObjectInfoKey.INVALID_COLUMNS in view.info:
        raise ValueError(f"Invalid column definitions: {view.info[TableObjectInfoKey.INVALID_COLUMNS]!r}. "
                         f"Each column should be a Column object or a str.")
    for column_name in view.info.get(TableObjectInfoKey.COLUMN_NAMES) or ():
        if not isinstance(column_name, str) or not column_name:
            raise ValueError(f"Invalid column name in the column list of view {view.name}: {column_name!r}")
    for key in view.info.get(TableObjectInfoKey.STORAGE) or {}:
        validate_option_key(key)
    view._track_dependencies(source)


class MaterializedView(View):
    """Represents a Materialized View object in Python."""

    def __init__(
        self,
        name: str,
        metadata: MetaData,
        *args,
        definition: Optional[QueryType] = None,
        block: Optional[Callable[[], Any]] = None,
        schema: Optional[str] = None,
        comment: Optional[str] = None,
        columns: Optional[List[ColumnDefinition]] = None,
        depends_on: Optional[Iterable[Table]] = None,
        column_names: Optional[Iterable[str]] = None,
        storage: Optional[Mapping[str, Any]] = None,
        data: bool = True,
        keep_existing: bool = False,
        extend_existing: bool = False,
        _no_init: bool = True,
        **kwargs: Any,
    ) -> None:
        """
        Create a Materialized View object.

        Args:
            storage: Storage parameters, e.g. ``{'fillfactor': 50}``.
            data: Whether to populate the view on creation. ``data=False``
                creates it ``WITH NO DATA``, to be filled by a later refresh.
            Other arguments are the same as `View`.

        Examples:
            MaterializedView('empty_product_users', metadata,
                             definition='SELECT name FROM products',
                             storage={'fillfactor': 50},
                             data=False)
        """
        if _no_init:
            return

        object_info = kwargs.setdefault("info", {})
        object_info[TableObjectInfoKey.STORAGE] = dict(storage or {})
        object_info[TableObjectInfoKey.DATA] = bool(data)

        super().__init__(name, metadata, *args, definition=definition, block=block, schema=schema,
                         comment=comment, columns=columns, depends_on=depends_on, column_names=column_names,
                         keep_existing=keep_existing, extend_existing=extend_existing,
                         _no_init=False, **kwargs)

        # View.__init__ marks it as a VIEW, override it
        self.info[TableObjectInfoKey.TABLE_KIND] = TableKind.MATERIALIZED_VIEW

    def _init_existing(self, *args, **kwargs):
        storage = kwargs.pop("storage", None)
        data = kwargs.pop("data", None)
        if storage is not None:
            self.info[TableObjectInfoKey.STORAGE] = dict(storage)
        if data is not None:
            self.info[TableObjectInfoKey.DATA] = bool(data)
        super()._init_existing(*args, **kwargs)

    @property
    def storage(self) -> Dict[str, Any]:
        return self.info.get(TableObjectInfoKey.STORAGE) or {}

    @property
    def data(self) -> bool:
        return self.info.get(TableObjectInfoKey.DATA, True)

    @property
    def options(self) -> MaterializedViewOptions:
        return MaterializedViewOptions.from_kwargs(self.storage, self.data)
