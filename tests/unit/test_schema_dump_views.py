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

from io import StringIO
from unittest.mock import Mock

import pytest
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine.reflection import Inspector

from spectacles import reflection
from spectacles.alembic import dump, dump_views
from spectacles.alembic.ops import CreateMaterializedViewOp, CreateViewOp
from spectacles.sql.schema import MaterializedViewOptions


def _make_inspector(dialect, views=None, materialized_views=None):
    """A mock Inspector answering from ``{name: definition}`` dicts."""
    views = views or {}
    materialized_views = materialized_views or {}
    definitions = {**views, **materialized_views}

    inspector = Mock(spec=Inspector)
    inspector.dialect = dialect
    inspector.bind = Mock()
    inspector.bind.dialect = dialect
    inspector.get_view_names.side_effect = lambda schema=None: list(views)
    inspector.get_materialized_view_names.side_effect = lambda schema=None: list(materialized_views)
    inspector.get_view_definition.side_effect = lambda name, schema=None: definitions.get(name)
    inspector.get_columns.return_value = []
    return inspector


@pytest.fixture
def reflected_options(monkeypatch):
    options = {}

    def reader(connection, view_name, schema):
        return options.get(view_name, MaterializedViewOptions())

    monkeypatch.setitem(reflection._materialized_view_options_readers, "postgresql", reader)
    return options


class TestDumpViews:
    def test_views_then_materialized_views(self, reflected_options):
        reflected_options["empty_materialized_product_users"] = MaterializedViewOptions(
            populate_data=False, storage_parameters={"fillfactor": 50})
        inspector = _make_inspector(
            postgresql.dialect(),
            views={"new_product_users": " SELECT products.name\n   FROM products;", "all_products": " SELECT 1;"},
            materialized_views={
                "materialized_product_users": " SELECT products.name\n   FROM products;",
                "empty_materialized_product_users": " SELECT products.name\n   FROM products;",
            },
        )

        upgrade_ops = dump_views(inspector)
        assert [(type(op), op.view_name) for op in upgrade_ops.ops] == [
            (CreateViewOp, "all_products"),
            (CreateViewOp, "new_product_users"),
            (CreateMaterializedViewOp, "empty_materialized_product_users"),
            (CreateMaterializedViewOp, "materialized_product_users"),
        ]
        empty_mv = upgrade_ops.ops[2]
        assert (empty_mv.storage, empty_mv.data) == ({"fillfactor": 50}, False)
        assert upgrade_ops.ops[3].data is True

    def test_dump_script(self, reflected_options):
        reflected_options["empty_materialized_product_users"] = MaterializedViewOptions(
            populate_data=False, storage_parameters={"fillfactor": 50})
        inspector = _make_inspector(
            postgresql.dialect(),
            views={"new_product_users": " SELECT name FROM products;"},
            materialized_views={"empty_materialized_product_users": " SELECT name FROM products;"},
        )

        script = dump(inspector, StringIO())
        assert ("op.create_materialized_view('empty_materialized_product_users', 'SELECT name FROM products', "
                "storage={'fillfactor': 50}, data=False)") in script
        assert script.index("op.create_view('new_product_users'") < \
            script.index("op.create_materialized_view('empty_materialized_product_users'")

    def test_schema(self, reflected_options):
        inspector = _make_inspector(postgresql.dialect(), materialized_views={"mv1": " SELECT 1;"})

        script = dump(inspector, StringIO(), schema="reports")
        assert "op.create_materialized_view('mv1', 'SELECT 1', schema='reports')" in script
        inspector.get_materialized_view_names.assert_called_once_with(schema="reports")

    def test_materialized_views_skipped_without_support(self):
        inspector = _make_inspector(sqlite.dialect(), views={"v1": "CREATE VIEW v1 AS SELECT 1"})

        upgrade_ops = dump_views(inspector)
        assert [op.view_name for op in upgrade_ops.ops] == ["v1"]
        inspector.get_materialized_view_names.assert_not_called()
