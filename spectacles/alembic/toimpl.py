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

# Implementation functions for the view operations, ordered:
# view → mv, create → drop → refresh
import logging

from alembic.operations import Operations

from spectacles.alembic.ops import (
    CreateMaterializedViewOp,
    CreateViewOp,
    DropMaterializedViewOp,
    DropViewOp,
    RefreshMaterializedViewOp,
)
from spectacles.common.params import ViewOperation
from spectacles.sql.compiler import check_materialized_views_supported
from spectacles.sql.ddl import (
    CreateMaterializedView,
    CreateView,
    DropMaterializedView,
    DropView,
    RefreshMaterializedView,
)


logger = logging.getLogger(__name__)


@Operations.implementation_for(CreateViewOp)
def create_view(operations: Operations, op: CreateViewOp) -> None:
    """Execute a CREATE VIEW statement."""
    logger.debug("implementation create_view: %s", op.view_name)
    view = op.to_view()
    operations.execute(CreateView(view, or_replace=op.or_replace, if_not_exists=op.if_not_exists))


@Operations.implementation_for(DropViewOp)
def drop_view(operations: Operations, op: DropViewOp) -> None:
    """Implementation for the 'drop_view' operation."""
    logger.debug("implementation drop_view: %s", op.view_name)
    # For DROP VIEW, we only need name and schema
    view = op.to_view()
    operations.execute(DropView(view, if_exists=op.if_exists, cascade=op.cascade))


@Operations.implementation_for(CreateMaterializedViewOp)
def create_materialized_view(operations: Operations, op: CreateMaterializedViewOp) -> None:
    """Execute a CREATE MATERIALIZED VIEW statement, after dropping the old one if forced."""
    logger.debug("implementation create_materialized_view: %s", op.view_name)
    check_materialized_views_supported(operations.impl.dialect, ViewOperation.CREATE_MATERIALIZED_VIEW)
    mv = op.to_mv()
    if op.force:
        operations.execute(DropMaterializedView(mv, if_exists=True))
    operations.execute(CreateMaterializedView(mv, if_not_exists=op.if_not_exists))


@Operations.implementation_for(DropMaterializedViewOp)
def drop_materialized_view(operations: Operations, op: DropMaterializedViewOp) -> None:
    """Execute a DROP MATERIALIZED VIEW statement."""
    logger.debug("implementation drop_materialized_view: %s", op.view_name)
    check_materialized_views_supported(operations.impl.dialect, ViewOperation.DROP_MATERIALIZED_VIEW)
    mv = op.to_mv()
    operations.execute(DropMaterializedView(mv, if_exists=op.if_exists, cascade=op.cascade))


@Operations.implementation_for(RefreshMaterializedViewOp)
def refresh_materialized_view(operations: Operations, op: RefreshMaterializedViewOp) -> None:
    """Execute a REFRESH MATERIALIZED VIEW statement."""
    logger.debug("implementation refresh_materialized_view: %s", op.view_name)
    check_materialized_views_supported(operations.impl.dialect, ViewOperation.REFRESH_MATERIALIZED_VIEW)
    mv = op.to_mv()
    operations.execute(RefreshMaterializedView(mv, concurrently=op.concurrently, with_data=op.data))
