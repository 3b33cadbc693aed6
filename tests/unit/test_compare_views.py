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


from unittest.mock import Mock

from alembic.autogenerate.api import AutogenContext
from alembic.operations.ops import UpgradeOps
import pytest
from sqlalchemy import Column, Integer, MetaData, String, Table, exc, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine.reflection import Inspector

from spectacles import reflection
from spectacles.alembic.compare import (
    _autogen_for_views,
    combine_include_object,
    include_object_for_views,
)
from spectacles.alembic.ops import (
    CreateMaterializedViewOp,
    CreateViewOp,
    DropMaterializedViewOp,
    DropViewOp,
)
from spectacles.sql.schema import MaterializedView, MaterializedViewOptions, View


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


def _make_autogen_context(inspector, metadata):
    autogen_context = Mock(spec=AutogenContext)
    autogen_context.inspector = inspector
    autogen_context.metadata = metadata
    autogen_context.dialect = inspector.dialect
    autogen_context.run_name_filters.return_value = True
    autogen_context.run_object_filters.return_value = True
    return autogen_context


def _describe(upgrade_ops):
    return [(type(op).__name__, op.view_name) for op in upgrade_ops.ops]


class TestCompareViews:
    def setup_method(self, method):
        self.metadata = MetaData()
        Table("products", self.metadata, Column("id", Integer), Column("name", String(50)))

    def _compare(self, inspector, schemas=frozenset([None])):
        upgrade_ops = UpgradeOps(ops=[])
        _autogen_for_views(_make_autogen_context(inspector, self.metadata), upgrade_ops, set(schemas))
        return upgrade_ops

    def test_added_removed_and_changed(self):
        View("added_view", self.metadata, definition="SELECT 1")
        View("same_view", self.metadata, definition="SELECT name FROM products")
        View("changed_view", self.metadata, definition="SELECT id FROM products")
        inspector = _make_inspector(sqlite.dialect(), views={
            "same_view": "CREATE VIEW same_view AS SELECT  name\nFROM products",
            "changed_view": "CREATE VIEW changed_view AS SELECT name FROM products",
            "removed_view": "CREATE VIEW removed_view AS SELECT 2",
        })

        upgrade_ops = self._compare(inspector)
        assert _describe(upgrade_ops) == [
            ("CreateViewOp", "added_view"),
            ("DropViewOp", "removed_view"),
            ("DropViewOp", "changed_view"),
            ("CreateViewOp", "changed_view"),
        ]
        # the removed view can be recreated on downgrade
        assert upgrade_ops.ops[1].existing_definition == "SELECT 2"
        assert upgrade_ops.ops[3].definition == "SELECT id FROM products"

    def test_no_changes(self):
        View("same_view", self.metadata, definition="SELECT name FROM products")
        inspector = _make_inspector(sqlite.dialect(), views={
            "same_view": 'CREATE VIEW "same_view" AS SELECT "name" FROM products;',
        })
        assert self._compare(inspector).ops == []

    def test_materialized_views_skipped_without_support(self, caplog):
        MaterializedView("mv1", self.metadata, definition="SELECT 1")
        inspector = _make_inspector(sqlite.dialect())

        assert self._compare(inspector).ops == []
        inspector.get_materialized_view_names.assert_not_called()
        assert "Materialized views in the metadata are ignored" in caplog.text

    def test_other_schemas_warning(self):
        View("v1", self.metadata, definition="SELECT 1", schema="reports")
        inspector = _make_inspector(sqlite.dialect())
        with pytest.warns(UserWarning, match="Views in other schemas will be ignored"):
            assert self._compare(inspector).ops == []

    def test_name_filters(self):
        View("added_view", self.metadata, definition="SELECT 1")
        inspector = _make_inspector(sqlite.dialect(), views={"removed_view": "SELECT 2"})
        autogen_context = _make_autogen_context(inspector, self.metadata)
        autogen_context.run_name_filters.side_effect = lambda name, type_, parent_names: name != "removed_view"

        upgrade_ops = UpgradeOps(ops=[])
        _autogen_for_views(autogen_context, upgrade_ops, {None})
        assert _describe(upgrade_ops) == [("CreateViewOp", "added_view")]


class TestCompareMaterializedViews:
    def setup_method(self, method):
        self.metadata = MetaData()

    @pytest.fixture
    def reflected_options(self, monkeypatch):
        options = {}

        def reader(connection, view_name, schema):
            return options.get(view_name, MaterializedViewOptions())

        monkeypatch.setitem(reflection._materialized_view_options_readers, "postgresql", reader)
        return options

    def _compare(self, inspector):
        upgrade_ops = UpgradeOps(ops=[])
        _autogen_for_views(_make_autogen_context(inspector, self.metadata), upgrade_ops, {None})
        return upgrade_ops

    def test_added_and_removed(self, reflected_options):
        MaterializedView("empty_materialized_product_users", self.metadata,
                         definition="SELECT name FROM products", storage={"fillfactor": 50}, data=False)
        reflected_options["old_mv"] = MaterializedViewOptions(storage_parameters={"fillfactor": 70})
        inspector = _make_inspector(postgresql.dialect(), materialized_views={"old_mv": " SELECT 1;"})

        upgrade_ops = self._compare(inspector)
        assert _describe(upgrade_ops) == [
            ("CreateMaterializedViewOp", "empty_materialized_product_users"),
            ("DropMaterializedViewOp", "old_mv"),
        ]
        create_op, drop_op = upgrade_ops.ops
        assert (create_op.storage, create_op.data) == ({"fillfactor": 50}, False)
        assert (drop_op.existing_definition, drop_op.existing_storage) == ("SELECT 1", {"fillfactor": 70})

    def test_storage_change_recreates(self, reflected_options):
        MaterializedView("mv1", self.metadata, definition="SELECT 1", storage={"fillfactor": 50})
        reflected_options["mv1"] = MaterializedViewOptions(storage_parameters={"fillfactor": 70})
        inspector = _make_inspector(postgresql.dialect(), materialized_views={"mv1": " SELECT 1;"})

        assert _describe(self._compare(inspector)) == [
            ("DropMaterializedViewOp", "mv1"),
            ("CreateMaterializedViewOp", "mv1"),
        ]

    def test_populated_state_is_not_compared(self, reflected_options):
        MaterializedView("mv1", self.metadata, definition="SELECT 1", data=False)
        reflected_options["mv1"] = MaterializedViewOptions(populate_data=True)
        inspector = _make_inspector(postgresql.dialect(), materialized_views={"mv1": " SELECT 1;"})

        assert self._compare(inspector).ops == []

    def test_views_and_materialized_views_are_separate(self, reflected_options):
        View("v1", self.metadata, definition="SELECT 1")
        MaterializedView("mv1", self.metadata, definition="SELECT 1")
        inspector = _make_inspector(postgresql.dialect(), views={"v1": " SELECT 1;"},
                                    materialized_views={"mv1": " SELECT 1;"})
        assert self._compare(inspector).ops == []


class TestIncludeObject:
    def setup_method(self, method):
        self.metadata = MetaData()
        self.table = Table("products", self.metadata, Column("id", Integer))
        self.view = View("v1", self.metadata, definition="SELECT 1")
        self.mv = MaterializedView("mv1", self.metadata, definition="SELECT 1")

    def test_include_object_for_views(self):
        assert include_object_for_views(self.table, "products", "table", False, None) is True
        assert include_object_for_views(self.view, "v1", "table", False, None) is False
        assert include_object_for_views(self.mv, "mv1", "table", False, None) is False
        assert include_object_for_views(self.view, "v1", "view", False, None) is True

    def test_combine_include_object(self):
        assert combine_include_object() is include_object_for_views

        user_filter = Mock(return_value=False)
        combined = combine_include_object(user_filter)
        assert combined(self.view, "v1", "table", False, None) is False
        user_filter.assert_not_called()

        assert combined(self.table, "products", "table", False, None) is False
        user_filter.assert_called_once_with(self.table, "products", "table", False, None)


class TestComparePostgresqlDefinitions:
    """PostgreSQL reports its own rendering of a view, not the text it was created with."""

    def setup_method(self, method):
        self.metadata = MetaData()
        self.products = Table("products", self.metadata, Column("id", Integer), Column("name", String(50)))

    @pytest.fixture
    def canonical(self, monkeypatch):
        rewrites = {}
        seen = []

        def canonicalizer(connection, sql):
            seen.append(sql)
            result = rewrites.get(sql, sql)
            if isinstance(result, Exception):
                raise result
            return result

        monkeypatch.setitem(reflection._definition_canonicalizers, "postgresql", canonicalizer)
        return rewrites, seen

    def _compare(self, inspector):
        upgrade_ops = UpgradeOps(ops=[])
        _autogen_for_views(_make_autogen_context(inspector, self.metadata), upgrade_ops, {None})
        return upgrade_ops

    def test_reformatted_definition_is_not_a_change(self, canonical):
        rewrites, seen = canonical
        pg_text = " SELECT products.name\n   FROM products\n  WHERE (products.id > 1);"
        rewrites["SELECT name FROM products WHERE id > 1"] = pg_text
        View("v1", self.metadata, definition="SELECT name FROM products WHERE id > 1")
        inspector = _make_inspector(postgresql.dialect(), views={"v1": pg_text})

        assert self._compare(inspector).ops == []
        assert seen == ["SELECT name FROM products WHERE id > 1"]

    def test_changed_definition_after_read_back(self, canonical):
        rewrites, _ = canonical
        rewrites["SELECT id FROM products"] = " SELECT products.id\n   FROM products;"
        View("v1", self.metadata, definition="SELECT id FROM products")
        inspector = _make_inspector(postgresql.dialect(), views={"v1": " SELECT products.name\n   FROM products;"})

        assert _describe(self._compare(inspector)) == [("DropViewOp", "v1"), ("CreateViewOp", "v1")]

    def test_read_back_failure_compares_text(self, canonical, caplog):
        rewrites, _ = canonical
        rewrites["SELECT missing FROM products"] = exc.ProgrammingError(
            "CREATE TEMPORARY VIEW", None, Exception('column "missing" does not exist'))
        View("v1", self.metadata, definition="SELECT missing FROM products")
        inspector = _make_inspector(postgresql.dialect(), views={"v1": " SELECT products.name\n   FROM products;"})

        assert _describe(self._compare(inspector)) == [("DropViewOp", "v1"), ("CreateViewOp", "v1")]
        assert "comparing it as text" in caplog.text

    def test_builder_percent_signs_are_compared_once(self, canonical):
        _, seen = canonical
        View("v1", self.metadata, definition=select(self.products.c.name).where(self.products.c.name.like("t%")))
        inspector = _make_inspector(postgresql.dialect(), views={
            "v1": "SELECT products.name FROM products WHERE products.name LIKE 't%'",
        })

        assert self._compare(inspector).ops == []
        assert seen == []
