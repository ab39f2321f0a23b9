"""Unit tests for table filter construction."""

import pytest

from core.exceptions import ConfigurationError
from core.filters import build_table_filter, database_from_jdbc_url, format_table_name


class TestFormatTableName:
    def test_bare_table_is_qualified(self):
        assert format_table_name("shop", "orders") == "shop.orders"

    def test_qualified_table_passes_through(self):
        assert format_table_name("shop", "crm.contacts") == "crm.contacts"


class TestBuildTableFilter:
    def test_mixed_tables(self):
        table_filter = build_table_filter("d", ["t1", "s.t2"])

        assert table_filter.filter == "d.t1,s.t2"
        assert sorted(table_filter.probe_targets) == ["d.t1", "s.t2"]

    def test_one_probe_per_schema(self):
        table_filter = build_table_filter("shop", ["orders", "items", "crm.contacts", "crm.leads"])

        assert table_filter.filter == "shop.orders,shop.items,crm.contacts,crm.leads"
        assert len(table_filter.probe_targets) == 2
        schemas = {t.split(".")[0] for t in table_filter.probe_targets}
        assert schemas == {"shop", "crm"}

    def test_empty_tables_match_whole_database(self):
        table_filter = build_table_filter("d", [])

        assert table_filter.filter == "d\\..*"
        assert table_filter.probe_targets == []

    def test_none_tables_match_whole_database(self):
        assert build_table_filter("shop", None).filter == "shop\\..*"

    def test_jdbc_url_scenario(self):
        database = database_from_jdbc_url("jdbc:mysql://h/db?x=1")
        table_filter = build_table_filter(database, ["orders"])

        assert table_filter.filter == "db.orders"
        assert table_filter.probe_targets == ["db.orders"]


class TestDatabaseFromJdbcUrl:
    def test_with_port_and_options(self):
        assert database_from_jdbc_url("jdbc:mysql://localhost:3307/shop?useSSL=false") == "shop"

    @pytest.mark.parametrize(
        "url",
        [None, "", "mysql://localhost/shop", "jdbc:mysql://localhost:3306/", "jdbc:mysql://:3306/shop"],
    )
    def test_malformed_url(self, url):
        with pytest.raises(ConfigurationError):
            database_from_jdbc_url(url)
