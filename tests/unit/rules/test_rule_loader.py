import json
import pytest
from pkpublish.rules.loader import load_rules, load_rules_from_file
from pkpublish.rules.pattern import MatchRule
from pkpublish.utils.exceptions import RuleLoadError


def document(*transaction_filters):
    return json.dumps({"transaction_filters": list(transaction_filters)})


def row_filter(schema="sales", table="orders", change_types=("INSERT",), **extra):
    node = {
        "row_pattern": {
            "schema": schema,
            "table": table,
            "change_types": list(change_types),
        }
    }
    node.update(extra)
    return node


class TestLoadRules:
    """Test cases for rule document parsing"""

    def test_full_document(self):
        """Test every field of a transaction filter is read."""
        rules = load_rules(
            document(
                {
                    "name": "orders",
                    "filter_match_rule": "all",
                    "row_match_rule": "ANY",
                    "row_filters": [
                        row_filter(
                            name="new-orders",
                            include=False,
                            actions=[
                                {
                                    "type": "publish",
                                    "routing_key": "rk",
                                    "message": "hello",
                                }
                            ],
                        )
                    ],
                    "actions": [{"type": "publish", "routing_key": "orders.ins"}],
                }
            )
        )

        assert len(rules) == 1
        transaction_filter = rules.transaction_filters[0]
        assert transaction_filter.name == "orders"
        assert transaction_filter.filter_match_rule is MatchRule.ALL
        assert transaction_filter.row_match_rule is MatchRule.ANY
        assert transaction_filter.publish is True
        assert transaction_filter.effective_routing_key == "orders.ins"
        assert transaction_filter.fixed_message is None

        rf = transaction_filter.row_filters[0]
        assert rf.name == "new-orders"
        assert rf.include is False
        assert rf.publish is True
        assert rf.routing_key == "rk"
        assert rf.fixed_message == "hello"

    def test_defaults(self):
        """Test defaults for names, include, publish and match rules."""
        rules = load_rules(document({"row_filters": [row_filter()]}))

        transaction_filter = rules.transaction_filters[0]
        assert transaction_filter.name == "TransactionFilter-1"
        assert transaction_filter.effective_routing_key == "TransactionFilter-1"
        assert transaction_filter.publish is False
        assert transaction_filter.filter_match_rule is MatchRule.ALL
        assert transaction_filter.row_match_rule is MatchRule.ALL

        rf = transaction_filter.row_filters[0]
        assert rf.name == "sales.orders.INSERT"
        assert rf.include is True
        assert rf.publish is False
        assert rf.routing_key is None

    def test_synthetic_names_restart_per_load(self):
        """Test generated filter names are numbered within one load only."""
        text = document({"row_filters": []}, {"name": "x", "row_filters": []}, {"row_filters": []})

        first = [f.name for f in load_rules(text)]
        second = [f.name for f in load_rules(text)]

        assert first == ["TransactionFilter-1", "x", "TransactionFilter-2"]
        assert second == first

    def test_legacy_boolean_flags(self):
        """Test must_match_all flags map to ALL and ANY."""
        rules = load_rules(
            document(
                {
                    "must_match_all_filters": True,
                    "must_match_all_rows": False,
                    "row_filters": [row_filter()],
                }
            )
        )

        transaction_filter = rules.transaction_filters[0]
        assert transaction_filter.filter_match_rule is MatchRule.ALL
        assert transaction_filter.row_match_rule is MatchRule.ANY

    def test_explicit_rule_wins_over_legacy_flag(self):
        rules = load_rules(
            document(
                {
                    "row_match_rule": "NONE",
                    "must_match_all_rows": True,
                    "row_filters": [],
                }
            )
        )
        assert rules.transaction_filters[0].row_match_rule is MatchRule.NONE

    @pytest.mark.parametrize(
        "text,message",
        [
            ("{not json", "not valid JSON"),
            ("[]", "must be a JSON object"),
            ("{}", "transaction_filters"),
            (document({"name": "x"}), "row_filters"),
            (document({"row_filters": [{"name": "no-pattern"}]}), "row_pattern"),
            (
                document({"row_filters": [row_filter(change_types=["MERGE"])]}),
                "Unknown change type",
            ),
            (
                document({"row_filters": [], "actions": [{"type": "discard"}]}),
                "Unknown action type",
            ),
            (
                document({"row_filters": [], "actions": [{"routing_key": "x"}]}),
                "'type'",
            ),
            (
                document({"row_filters": [], "filter_match_rule": "MOST"}),
                "Invalid match rule",
            ),
            (
                document({"row_filters": [row_filter(include="yes")]}),
                "'include'",
            ),
            (
                document({"row_filters": [row_filter(schema=5)]}),
                "'schema'",
            ),
        ],
    )
    def test_invalid_documents(self, text, message):
        """Test malformed documents raise RuleLoadError."""
        with pytest.raises(RuleLoadError) as exc_info:
            load_rules(text)

        assert message in str(exc_info.value)

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "rules.json"
        path.write_text(document({"name": "orders", "row_filters": [row_filter()]}))

        rules = load_rules_from_file(str(path))

        assert [f.name for f in rules] == ["orders"]

    def test_load_from_missing_file(self, tmp_path):
        with pytest.raises(RuleLoadError) as exc_info:
            load_rules_from_file(str(tmp_path / "missing.json"))

        assert "Unable to read rule file" in str(exc_info.value)

    def test_load_from_file_not_utf8(self, tmp_path):
        path = tmp_path / "rules.json"
        path.write_bytes(b'{"transaction_filters": [\xff\xfe]}')

        with pytest.raises(RuleLoadError) as exc_info:
            load_rules_from_file(str(path))

        assert "Unable to read rule file" in str(exc_info.value)
