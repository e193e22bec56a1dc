import pytest
from pkpublish.keys.ddl import ObjectRef, classify


class TestClassify:
    """Test cases for DDL statement classification"""

    def test_drop_schema(self):
        operation = classify("DROP SCHEMA sales")

        assert operation.operation == "DROP"
        assert operation.object_type == "SCHEMA"
        assert operation.targets == (ObjectRef("sales", None),)

    def test_drop_database_is_schema(self):
        operation = classify("drop database if exists `Sales`;")

        assert operation.object_type == "SCHEMA"
        assert operation.targets == (ObjectRef("Sales", None),)

    def test_drop_table_list(self):
        operation = classify("DROP TEMPORARY TABLE IF EXISTS sales.orders, `items`")

        assert operation.operation == "DROP"
        assert operation.object_type == "TABLE"
        assert operation.targets == (
            ObjectRef("sales", "orders"),
            ObjectRef(None, "items"),
        )

    @pytest.mark.parametrize(
        "query",
        [
            "DROP TABLE IF EXISTS sales.orders",
            "DROP TABLE if  exists sales.orders",
            "DROP TABLE IF\n  EXISTS sales.orders",
        ],
    )
    def test_drop_table_if_exists(self, query):
        operation = classify(query)

        assert operation.targets == (ObjectRef("sales", "orders"),)

    def test_create_table_if_not_exists(self):
        operation = classify("CREATE TABLE IF NOT EXISTS sales.orders (id INT)")

        assert operation.operation == "CREATE"
        assert operation.targets == (ObjectRef("sales", "orders"),)

    def test_table_named_like_keyword_prefix(self):
        operation = classify("DROP TABLE iffy")

        assert operation.targets == (ObjectRef(None, "iffy"),)

    def test_alter_table(self):
        operation = classify("ALTER TABLE sales.orders ADD COLUMN note VARCHAR(20)")

        assert operation.operation == "ALTER"
        assert operation.targets == (ObjectRef("sales", "orders"),)

    def test_alter_table_rename(self):
        operation = classify("ALTER TABLE orders RENAME TO orders_old")

        assert operation.targets == (
            ObjectRef(None, "orders"),
            ObjectRef(None, "orders_old"),
        )

    def test_alter_table_rename_column_names_one_table(self):
        operation = classify("ALTER TABLE orders RENAME COLUMN a TO b")

        assert operation.targets == (ObjectRef(None, "orders"),)

    def test_rename_table(self):
        operation = classify("RENAME TABLE sales.a TO sales.b, c TO d")

        assert operation.operation == "RENAME"
        assert operation.object_type == "TABLE"
        assert operation.targets == (
            ObjectRef("sales", "a"),
            ObjectRef("sales", "b"),
            ObjectRef(None, "c"),
            ObjectRef(None, "d"),
        )

    def test_comments_are_ignored(self):
        operation = classify("/* migration 42 */ DROP TABLE orders")

        assert operation.operation == "DROP"
        assert operation.targets == (ObjectRef(None, "orders"),)

    @pytest.mark.parametrize(
        "query,operation,object_type",
        [
            ("CREATE INDEX idx ON orders (id)", "CREATE", "INDEX"),
            ("DROP VIEW sales.v", "DROP", "VIEW"),
            ("INSERT INTO orders VALUES (1)", "INSERT", None),
            ("FLUSH PRIVILEGES", "FLUSH", None),
        ],
    )
    def test_other_statements(self, query, operation, object_type):
        result = classify(query)

        assert result.operation == operation
        assert result.object_type == object_type
        assert result.targets == ()

    @pytest.mark.parametrize("query", ["", "   ", "DROP", "DROP TABLE", "RENAME TABLE a"])
    def test_unrecognised(self, query):
        assert classify(query) is None
