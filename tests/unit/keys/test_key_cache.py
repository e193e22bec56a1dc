import pytest
from unittest.mock import MagicMock
from pkpublish.events.transaction import SchemaChange
from pkpublish.keys.cache import KeyLookupStatus, TableKeyCache
from pkpublish.keys.catalog import CatalogSource, KeyColumn
from pkpublish.metrics.recorder import (
    MetricsRecorder,
    DB_CONNECT_ERROR,
    DB_LOOKUP_ERROR,
    DB_LOOKUP_NO_PRIMARY_KEY,
    DDL_PARSE_ERROR,
    ERROR,
)
from pkpublish.utils.exceptions import CacheLookupError


ID_COLUMN = KeyColumn("id", 1, 4, "int(11)")


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestTableKeyCache:
    """Test cases for TableKeyCache"""

    @pytest.fixture
    def catalog(self):
        catalog = MagicMock(spec=CatalogSource)
        catalog.primary_key.return_value = [ID_COLUMN]
        return catalog

    @pytest.fixture
    def metrics(self):
        return MetricsRecorder()

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def cache(self, catalog, metrics, clock):
        return TableKeyCache(catalog, metrics, reconnect_interval=10, clock=clock)

    def test_lookup_found_and_cached(self, cache, catalog):
        """Test a found key is cached under upper-cased names."""
        first = cache.lookup("sales", "orders")
        second = cache.lookup("SALES", "Orders")

        assert first.status is KeyLookupStatus.FOUND
        assert first.key_info.columns == (ID_COLUMN,)
        assert second is first
        catalog.primary_key.assert_called_once_with("sales", "orders")

    def test_no_primary_key_is_cached(self, cache, catalog, metrics):
        catalog.primary_key.return_value = []

        assert cache.lookup("sales", "log").status is KeyLookupStatus.NO_PRIMARY_KEY
        assert cache.lookup("sales", "log").status is KeyLookupStatus.NO_PRIMARY_KEY

        catalog.primary_key.assert_called_once()
        assert metrics.get(DB_LOOKUP_NO_PRIMARY_KEY) == 1
        assert metrics.get(ERROR) == 0

    def test_unknown_table_is_not_cached(self, cache, catalog, metrics):
        catalog.primary_key.return_value = None

        assert cache.lookup("sales", "ghost").status is KeyLookupStatus.UNKNOWN
        assert cache.lookup("sales", "ghost").status is KeyLookupStatus.UNKNOWN

        assert catalog.primary_key.call_count == 2
        assert metrics.get(DB_LOOKUP_ERROR) == 2

    def test_catalog_failure_is_unknown(self, cache, catalog, metrics):
        catalog.primary_key.side_effect = CacheLookupError("boom")

        assert cache.lookup("sales", "orders").status is KeyLookupStatus.UNKNOWN
        assert not cache.is_cached("sales", "orders")
        assert metrics.get(DB_LOOKUP_ERROR) == 1

    def test_refresh_bypasses_cache(self, cache, catalog):
        cache.lookup("sales", "orders")
        cache.lookup("sales", "orders", refresh=True)

        assert catalog.primary_key.call_count == 2

    def test_alter_table_forces_fresh_query(self, cache, catalog):
        """Test a lookup after ALTER TABLE always queries the catalog."""
        cache.lookup("S", "T")
        cache.lookup("S", "T")
        assert catalog.primary_key.call_count == 1

        cache.invalidate(SchemaChange("ALTER TABLE S.T ADD COLUMN c INT"))
        cache.lookup("S", "T")

        assert catalog.primary_key.call_count == 2

    def test_alter_table_uses_default_schema(self, cache, catalog):
        cache.lookup("sales", "orders")
        cache.lookup("billing", "orders")

        cache.invalidate(SchemaChange("ALTER TABLE orders ADD c INT", "sales"))

        assert not cache.is_cached("sales", "orders")
        assert cache.is_cached("billing", "orders")

    def test_drop_schema_evicts_whole_schema(self, cache, catalog):
        """Test DROP SCHEMA sales evicts every SALES entry."""
        cache.lookup("SALES", "orders")
        cache.lookup("Sales", "customers")
        cache.lookup("billing", "invoices")

        cache.invalidate(SchemaChange("DROP SCHEMA sales"))

        assert not cache.is_cached("sales", "orders")
        assert not cache.is_cached("sales", "customers")
        assert cache.is_cached("billing", "invoices")

        cache.lookup("sales", "orders")
        assert catalog.primary_key.call_count == 4

    def test_drop_table_if_exists(self, cache):
        cache.lookup("sales", "orders")
        cache.lookup("sales", "items")

        cache.invalidate(SchemaChange("DROP TABLE IF EXISTS sales.orders", "billing"))

        assert not cache.is_cached("sales", "orders")
        assert cache.is_cached("sales", "items")

    def test_drop_database_if_exists(self, cache, catalog, metrics):
        cache.lookup("sales", "orders")
        cache.lookup("sales", "items")
        cache.lookup("billing", "invoices")

        cache.invalidate(SchemaChange("DROP DATABASE IF EXISTS sales"))

        assert not cache.is_cached("sales", "orders")
        assert not cache.is_cached("sales", "items")
        assert cache.is_cached("billing", "invoices")
        assert metrics.get(DDL_PARSE_ERROR) == 0

        cache.lookup("sales", "orders")
        assert catalog.primary_key.call_count == 4

    def test_drop_table_list(self, cache):
        cache.lookup("sales", "orders")
        cache.lookup("sales", "items")
        cache.lookup("sales", "keep")

        cache.invalidate(SchemaChange("DROP TABLE orders, sales.items", "sales"))

        assert not cache.is_cached("sales", "orders")
        assert not cache.is_cached("sales", "items")
        assert cache.is_cached("sales", "keep")

    def test_rename_evicts_both_names(self, cache):
        cache.lookup("sales", "a")
        cache.lookup("sales", "b")

        cache.invalidate(SchemaChange("RENAME TABLE a TO b", "sales"))

        assert not cache.is_cached("sales", "a")
        assert not cache.is_cached("sales", "b")

    def test_other_statements_are_ignored(self, cache, metrics):
        cache.lookup("sales", "orders")

        cache.invalidate(SchemaChange("CREATE INDEX i ON orders (id)", "sales"))
        cache.invalidate(SchemaChange("", "sales"))

        assert cache.is_cached("sales", "orders")
        assert metrics.get(DDL_PARSE_ERROR) == 0

    def test_unparseable_ddl_clears_everything(self, cache, metrics):
        cache.lookup("sales", "orders")
        cache.lookup("billing", "invoices")

        cache.invalidate(SchemaChange("DROP TABLE"))

        assert not cache.is_cached("sales", "orders")
        assert not cache.is_cached("billing", "invoices")
        assert metrics.get(DDL_PARSE_ERROR) == 1
        assert metrics.get(ERROR) == 1

    def test_table_ddl_without_schema_clears_everything(self, cache, metrics):
        cache.lookup("sales", "orders")

        cache.invalidate(SchemaChange("DROP TABLE orders"))

        assert not cache.is_cached("sales", "orders")
        assert metrics.get(DDL_PARSE_ERROR) == 1

    def test_reconnect_is_time_boxed(self, cache, catalog, clock):
        cache.lookup("sales", "a")
        clock.now = 5
        cache.lookup("sales", "b")
        assert catalog.connect.call_count == 1

        clock.now = 16
        cache.lookup("sales", "c")
        assert catalog.connect.call_count == 2

    def test_reconnect_failure_is_counted_not_raised(self, cache, catalog, metrics):
        catalog.connect.side_effect = [CacheLookupError("down"), None]

        assert cache.lookup("sales", "orders").found
        assert metrics.get(DB_CONNECT_ERROR) == 1

        cache.lookup("sales", "other")
        assert catalog.connect.call_count == 2

    def test_release(self, cache, catalog):
        cache.lookup("sales", "orders")

        cache.release()

        assert not cache.is_cached("sales", "orders")
        catalog.close.assert_called_once()
