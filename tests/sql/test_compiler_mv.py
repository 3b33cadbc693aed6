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

import pytest
from sqlalchemy import Column, Integer, String, Table, select
from sqlalchemy.dialects import mssql, mysql, postgresql, sqlite
from sqlalchemy.exc import CompileError
from sqlalchemy.schema import CreateTable, DropTable, MetaData

from spectacles.exc import UnsupportedOperationError
from spectacles.sql.compiler import supports_materialized_views
from spectacles.sql.ddl import CreateMaterializedView, DropMaterializedView, RefreshMaterializedView
from spectacles.sql.schema import MaterializedView
from tests.test_utils import normalize_sql


class TestMaterializedViewCompiler:
    @classmethod
    def setup_class(cls):
        cls.logger = logging.getLogger(__name__)
        cls.dialect = postgresql.dialect()

    def setup_method(self, method):
        self.metadata = MetaData()
        self.products = Table(
            "products", self.metadata,
            Column("id", Integer, primary_key=True),
            Column("name", String(50)),
        )

    def test_create_materialized_view(self):
        mv = MaterializedView("mv1", self.metadata, definition="SELECT name FROM products")
        sql = str(CreateMaterializedView(mv).compile(dialect=self.dialect))
        expected = "CREATE MATERIALIZED VIEW mv1 AS SELECT name FROM products WITH DATA"
        assert normalize_sql(sql) == normalize_sql(expected)

    def test_create_materialized_view_without_data(self):
        mv = MaterializedView("empty_mv", self.metadata, definition="SELECT name FROM products", data=False)
        sql = str(CreateMaterializedView(mv).compile(dialect=self.dialect))
        assert sql.endswith(" WITH NO DATA")

    def test_create_materialized_view_with_storage(self):
        mv = MaterializedView(
            "empty_materialized_product_users", self.metadata,
            definition="SELECT name FROM products",
            storage={"fillfactor": 50},
            data=False,
        )
        sql = str(CreateMaterializedView(mv).compile(dialect=self.dialect))
        expected = (
            "CREATE MATERIALIZED VIEW empty_materialized_product_users WITH (fillfactor = 50) "
            "AS SELECT name FROM products WITH NO DATA"
        )
        assert sql == expected
        assert "fillfactor = 50" in sql

    def test_create_materialized_view_storage_values(self):
        mv = MaterializedView(
            "mv1", self.metadata,
            definition="SELECT 1",
            storage={"fillfactor": 70, "autovacuum_enabled": False, "toast.autovacuum_vacuum_scale_factor": 0.2},
        )
        sql = str(CreateMaterializedView(mv).compile(dialect=self.dialect))
        assert (
            "WITH (fillfactor = 70, autovacuum_enabled = false, toast.autovacuum_vacuum_scale_factor = 0.2)"
            in sql
        )

    def test_create_materialized_view_invalid_storage_key(self):
        with pytest.raises(ValueError):
            MaterializedView("mv1", self.metadata, definition="SELECT 1", storage={"fillfactor = 1; --": 1})

    def test_create_materialized_view_from_selectable(self):
        stmt = select(self.products.c.name).where(self.products.c.id > 5)
        mv = MaterializedView("mv1", self.metadata, definition=stmt, schema="reports")
        sql = str(CreateMaterializedView(mv, if_not_exists=True).compile(dialect=self.dialect))
        expected = (
            "CREATE MATERIALIZED VIEW IF NOT EXISTS reports.mv1 AS "
            "SELECT products.name FROM products WHERE products.id > 5 WITH DATA"
        )
        assert normalize_sql(sql) == normalize_sql(expected)

    def test_create_materialized_view_with_column_list(self):
        mv = MaterializedView("mv1", self.metadata, definition="SELECT name FROM products WHERE name LIKE 't%'",
                              column_names=["product_name"], storage={"fillfactor": 50})
        sql = str(CreateMaterializedView(mv).compile(dialect=self.dialect))
        assert sql == (
            "CREATE MATERIALIZED VIEW mv1 (product_name) WITH (fillfactor = 50) "
            "AS SELECT name FROM products WHERE name LIKE 't%%' WITH DATA"
        )

    def test_drop_materialized_view(self):
        sql = str(DropMaterializedView("mv1").compile(dialect=self.dialect))
        assert sql == "DROP MATERIALIZED VIEW mv1"

        sql = str(DropMaterializedView("mv1", if_exists=True, cascade=True).compile(dialect=self.dialect))
        assert sql == "DROP MATERIALIZED VIEW IF EXISTS mv1 CASCADE"

    def test_refresh_materialized_view(self):
        sql = str(RefreshMaterializedView("mv1").compile(dialect=self.dialect))
        assert sql == "REFRESH MATERIALIZED VIEW mv1"

        sql = str(RefreshMaterializedView("mv1", concurrently=True).compile(dialect=self.dialect))
        assert sql == "REFRESH MATERIALIZED VIEW CONCURRENTLY mv1"

        sql = str(RefreshMaterializedView("mv1", with_data=False).compile(dialect=self.dialect))
        assert sql == "REFRESH MATERIALIZED VIEW mv1 WITH NO DATA"

    def test_refresh_concurrently_without_data(self):
        with pytest.raises(CompileError):
            RefreshMaterializedView("mv1", concurrently=True, with_data=False).compile(dialect=self.dialect)

    def test_create_and_drop_table_of_materialized_view(self):
        mv = MaterializedView("mv1", self.metadata, definition=select(self.products.c.name), data=False)
        sql = str(CreateTable(mv).compile(dialect=self.dialect))
        assert normalize_sql(sql) == normalize_sql(
            "CREATE MATERIALIZED VIEW mv1 AS SELECT products.name FROM products WITH NO DATA"
        )
        sql = str(DropTable(mv).compile(dialect=self.dialect))
        assert sql == "DROP MATERIALIZED VIEW mv1"


class TestMaterializedViewCapability:
    """Every materialized view statement fails on backends without materialized views."""

    @pytest.mark.parametrize("dialect, expected", [
        (postgresql.dialect(), True),
        (mysql.dialect(), False),
        (sqlite.dialect(), False),
        (mssql.dialect(), False),
    ])
    def test_supports_materialized_views(self, dialect, expected):
        assert supports_materialized_views(dialect) is expected

    @pytest.mark.parametrize("dialect", [mysql.dialect(), sqlite.dialect(), mssql.dialect()])
    def test_statements_unsupported(self, dialect):
        mv = MaterializedView("mv1", MetaData(), definition="SELECT 1")
        for statement in (
            CreateMaterializedView(mv),
            DropMaterializedView(mv),
            RefreshMaterializedView(mv),
        ):
            with pytest.raises(UnsupportedOperationError) as exc_info:
                statement.compile(dialect=dialect)
            assert exc_info.value.dialect_name == dialect.name

    def test_unsupported_is_logged(self, caplog):
        mv = MaterializedView("mv1", MetaData(), definition="SELECT 1")
        with caplog.at_level(logging.ERROR, logger="spectacles.sql.compiler"):
            with pytest.raises(UnsupportedOperationError):
                CreateMaterializedView(mv).compile(dialect=sqlite.dialect())
        assert "create_materialized_view is not supported by the 'sqlite' dialect" in caplog.text
