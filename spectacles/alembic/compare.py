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

from functools import wraps
import logging
from typing import Dict, Optional, Set, Tuple, Union
import warnings

from alembic.autogenerate import comparators
from alembic.autogenerate.api import AutogenContext
from alembic.operations.ops import UpgradeOps
from sqlalchemy.engine.reflection import Inspector
from sqlalchemy.schema import MetaData, Table
from sqlalchemy.util import OrderedSet

from spectacles import reflection
from spectacles.alembic.ops import (
    CreateMaterializedViewOp,
    CreateViewOp,
    DropMaterializedViewOp,
    DropViewOp,
)
from spectacles.common import utils
from spectacles.common.params import TableKind, TableObjectInfoKey
from spectacles.sql.compiler import supports_materialized_views
from spectacles.sql.query import compile_query
from spectacles.sql.schema import MaterializedViewOptions, View, get_table_kind


logger = logging.getLogger(__name__)


ViewKey = Tuple[Optional[str], str]


def include_object_for_views(object, name, type_, reflected, compare_to):
    """
    Filter objects for Alembic's autogenerate - exclude View/MV from table comparisons.

    Views and materialized views are compared by the "schema" comparator below,
    so they must not be seen as tables by the default table comparison.
    """
    if type_ == "table":
        # object is a sqlalchemy.Table object, from metadata or reflected
        table_kind = object.info.get(TableObjectInfoKey.TABLE_KIND)
        if table_kind in (TableKind.VIEW, TableKind.MATERIALIZED_VIEW):
            return False
    return True


def combine_include_object(user_include_object=None):
    """
    Combine the view filter with a user-defined ``include_object`` function.

    The view filter is executed first. If it returns False, the object
    is excluded. If it returns True, the user's filter is then executed.

    Usage in ``env.py``::

        context.configure(..., include_object=combine_include_object(my_include_object))
    """
    if user_include_object is None:
        return include_object_for_views

    @wraps(user_include_object)
    def combined(object, name, type_, reflected, compare_to):
        if not include_object_for_views(object, name, type_, reflected, compare_to):
            return False
        return user_include_object(object, name, type_, reflected, compare_to)

    return combined


def _metadata_views(
    autogen_context: AutogenContext,
    table_kind: str,
    default_schema: Optional[str],
) -> Dict[ViewKey, Table]:
    """Views of a kind in the metadata, keyed by (schema, name), the default schema normalized to None."""
    metadata = autogen_context.metadata
    if metadata is None:
        return {}
    # multiple MetaData objects may be given as a sequence
    metadatas = metadata if isinstance(metadata, (list, tuple)) else [metadata]
    result = {}
    for md in metadatas:
        for table in md.tables.values():
            if get_table_kind(table) != table_kind:
                continue
            schema = table.schema if table.schema != default_schema else None
            if autogen_context.run_name_filters(table.name, "view", {"schema_name": schema}):
                result[(schema, table.name)] = table
    return result


def _conn_names(
    autogen_context: AutogenContext,
    names_by_schema,
    schemas: Union[Set[None], Set[Optional[str]]],
) -> Set[ViewKey]:
    result = set()
    for schema in schemas:
        result.update(
            (schema, vname)
            for vname in names_by_schema(schema)
            if autogen_context.run_name_filters(vname, "view", {"schema_name": schema})
        )
    return result


def _sorted_keys(keys) -> list:
    return sorted(keys, key=lambda x: (x[0] or "", x[1]))


@comparators.dispatch_for("schema")
def _autogen_for_views(
    autogen_context: AutogenContext,
    upgrade_ops: UpgradeOps,
    schemas: Union[Set[None], Set[Optional[str]]]
) -> None:
    """
    Main autogenerate entrypoint for views and materialized views.

    Scan views in database and compare with metadata.
    """
    inspector: Inspector = autogen_context.inspector
    default_schema = inspector.bind.dialect.default_schema_name
    logger.debug("Start to autogenerate for views: schemas: %s", schemas)

    metadata_views = _metadata_views(autogen_context, TableKind.VIEW, default_schema)
    metadata_mvs = _metadata_views(autogen_context, TableKind.MATERIALIZED_VIEW, default_schema)

    if len(schemas) == 1 and None in schemas:
        other_schemas = set(s for s, _ in list(metadata_views) + list(metadata_mvs) if s not in schemas)
        if other_schemas:
            warnings.warn(
                "Views in other schemas will be ignored. It's probably you have not set the `include_schemas` "
                "and `include_name` correctly. Set them in you `env.py` properly if you want to manage views "
                f"in other schemas: {other_schemas!r}",
                UserWarning,
            )

    conn_views = _conn_names(
        autogen_context, lambda s: inspector.get_view_names(schema=s), schemas)
    _compare_views(
        conn_views,
        {k: v for k, v in metadata_views.items() if k[0] in schemas},
        inspector,
        upgrade_ops,
        autogen_context,
    )

    if not supports_materialized_views(inspector.dialect):
        if metadata_mvs:
            logger.warning("Materialized views in the metadata are ignored, they are not supported "
                           "by the %r dialect: %s", inspector.dialect.name, _sorted_keys(metadata_mvs))
        return
    conn_mvs = _conn_names(
        autogen_context, lambda s: inspector.get_materialized_view_names(schema=s), schemas)
    _compare_materialized_views(
        conn_mvs,
        {k: v for k, v in metadata_mvs.items() if k[0] in schemas},
        inspector,
        upgrade_ops,
        autogen_context,
    )


def _compare_views(
    conn_view_names: Set[ViewKey],
    metadata_views: Dict[ViewKey, Table],
    inspector: Inspector,
    upgrade_ops: UpgradeOps,
    autogen_context: AutogenContext,
) -> None:
    """Compare views between database and metadata, generating create/drop operations."""
    metadata_view_names = OrderedSet(metadata_views)
    logger.debug("start to compare views, conn_view_names (from DB): %s, metadata_view_names (from metadata): %s",
                 conn_view_names, metadata_view_names)

    # Added views (in metadata but not in database)
    for s, vname in _sorted_keys(metadata_view_names.difference(conn_view_names)):
        metadata_view = metadata_views[(s, vname)]
        if autogen_context.run_object_filters(metadata_view, vname, "view", False, None):
            upgrade_ops.ops.append(CreateViewOp.from_view(metadata_view))
            logger.info("Detected added view %r", utils.gen_simple_qualified_name(vname, s))

    # Dropped views (in database but not in metadata)
    # Use a separate MetaData to avoid polluting the user's metadata
    removal_metadata = MetaData()
    for s, vname in _sorted_keys(conn_view_names.difference(metadata_view_names)):
        conn_view = reflection.reflect_view(inspector, vname, schema=s, metadata=removal_metadata)
        if autogen_context.run_object_filters(conn_view, vname, "view", True, None):
            upgrade_ops.ops.append(DropViewOp.from_view(conn_view))
            logger.info("Detected removed view %r", utils.gen_simple_qualified_name(vname, s))

    # Modified views (in both database and metadata)
    existing_metadata = MetaData()
    for s, vname in _sorted_keys(conn_view_names.intersection(metadata_view_names)):
        metadata_view = metadata_views[(s, vname)]
        conn_view = reflection.reflect_view(inspector, vname, schema=s, metadata=existing_metadata)
        logger.debug("Comparing existing view: %s", utils.gen_simple_qualified_name(vname, s))
        if autogen_context.run_object_filters(metadata_view, vname, "view", False, conn_view):
            comparators.dispatch("view")(
                autogen_context,
                upgrade_ops,
                s,
                vname,
                conn_view,
                metadata_view,
            )


def _compare_materialized_views(
    conn_mv_names: Set[ViewKey],
    metadata_mvs: Dict[ViewKey, Table],
    inspector: Inspector,
    upgrade_ops: UpgradeOps,
    autogen_context: AutogenContext,
) -> None:
    """Compare materialized views between database and metadata."""
    metadata_mv_names = OrderedSet(metadata_mvs)
    logger.debug("start to compare materialized views, conn_mv_names (from DB): %s, "
                 "metadata_mv_names (from metadata): %s", conn_mv_names, metadata_mv_names)

    for s, vname in _sorted_keys(metadata_mv_names.difference(conn_mv_names)):
        metadata_mv = metadata_mvs[(s, vname)]
        if autogen_context.run_object_filters(metadata_mv, vname, "materialized_view", False, None):
            upgrade_ops.ops.append(CreateMaterializedViewOp.from_mv(metadata_mv))
            logger.info("Detected added materialized view %r", utils.gen_simple_qualified_name(vname, s))

    removal_metadata = MetaData()
    for s, vname in _sorted_keys(conn_mv_names.difference(metadata_mv_names)):
        conn_mv = reflection.reflect_materialized_view(inspector, vname, schema=s, metadata=removal_metadata)
        if autogen_context.run_object_filters(conn_mv, vname, "materialized_view", True, None):
            upgrade_ops.ops.append(DropMaterializedViewOp.from_mv(conn_mv))
            logger.info("Detected removed materialized view %r", utils.gen_simple_qualified_name(vname, s))

    existing_metadata = MetaData()
    for s, vname in _sorted_keys(conn_mv_names.intersection(metadata_mv_names)):
        metadata_mv = metadata_mvs[(s, vname)]
        conn_mv = reflection.reflect_materialized_view(inspector, vname, schema=s, metadata=existing_metadata)
        logger.debug("Comparing existing materialized view: %s", utils.gen_simple_qualified_name(vname, s))
        if autogen_context.run_object_filters(metadata_mv, vname, "materialized_view", False, conn_mv):
            comparators.dispatch("materialized_view")(
                autogen_context,
                upgrade_ops,
                s,
                vname,
                conn_mv,
                metadata_mv,
            )


def _definition_changed(
    autogen_context: AutogenContext,
    qualified_name: str,
    conn_view: Table,
    metadata_view: Table,
    object_label: str,
) -> bool:
    """
    Compare the normalized SQL of both definitions.

    The database may reformat a definition (PostgreSQL does), so when the
    normalized texts differ the metadata definition is read back through
    the database, if the dialect supports it, and compared again.
    """
    conn_definition = compile_query(conn_view.query_source) if isinstance(conn_view, View) else None
    metadata_definition = compile_query(
        metadata_view.query_source if isinstance(metadata_view, View)
        else metadata_view.info.get(TableObjectInfoKey.QUERY_SOURCE),
        autogen_context.dialect,
    )
    conn_normalized = utils.normalize_sql_for_compare(conn_definition)
    if conn_normalized == utils.normalize_sql_for_compare(metadata_definition):
        return False
    if conn_definition and metadata_definition:
        canonical = reflection.get_canonical_definition(autogen_context.inspector, metadata_definition)
        if canonical is not None and utils.normalize_sql_for_compare(canonical) == conn_normalized:
            logger.debug("definition of %s %r only differs in formatting", object_label, qualified_name)
            return False
    logger.info("Detected changed definition on %s %r", object_label, qualified_name)
    logger.debug("definition in database: %r, definition in metadata: %r", conn_definition, metadata_definition)
    return True


@comparators.dispatch_for("view")
def compare_view(
    autogen_context: AutogenContext,
    upgrade_ops: UpgradeOps,
    schema: Optional[str],
    view_name: str,
    conn_view: Table,
    metadata_view: Table,
) -> None:
    """
    Compare a single view and generate operations if needed.

    A view can't be altered in place on every database, so a changed
    definition is migrated by a drop followed by a create.
    """
    qualified_name = utils.gen_simple_qualified_name(view_name, schema)
    logger.debug("compare_view: view_name=%r", qualified_name)

    if _definition_changed(autogen_context, qualified_name, conn_view, metadata_view, "view"):
        upgrade_ops.ops.append(DropViewOp.from_view(conn_view))
        upgrade_ops.ops.append(CreateViewOp.from_view(metadata_view))


@comparators.dispatch_for("materialized_view")
def compare_materialized_view(
    autogen_context: AutogenContext,
    upgrade_ops: UpgradeOps,
    schema: Optional[str],
    view_name: str,
    conn_mv: Table,
    metadata_mv: Table,
) -> None:
    """
    Compare a single materialized view: its definition and storage parameters.

    The populated state is not compared, a view created WITH NO DATA is
    populated by its first refresh.
    """
    qualified_name = utils.gen_simple_qualified_name(view_name, schema)
    logger.debug("compare_materialized_view: view_name=%r", qualified_name)

    changed = _definition_changed(autogen_context, qualified_name, conn_mv, metadata_mv, "materialized view")

    conn_options = MaterializedViewOptions.from_kwargs(
        conn_mv.info.get(TableObjectInfoKey.STORAGE), conn_mv.info.get(TableObjectInfoKey.DATA))
    metadata_options = MaterializedViewOptions.from_kwargs(
        metadata_mv.info.get(TableObjectInfoKey.STORAGE), metadata_mv.info.get(TableObjectInfoKey.DATA))
    if dict(conn_options.storage_parameters) != dict(metadata_options.storage_parameters):
        logger.info("Detected changed storage parameters on materialized view %r: %r -> %r", qualified_name,
                    dict(conn_options.storage_parameters), dict(metadata_options.storage_parameters))
        changed = True
    if changed:
        upgrade_ops.ops.append(DropMaterializedViewOp.from_mv(conn_mv))
        upgrade_ops.ops.append(CreateMaterializedViewOp.from_mv(metadata_mv))
