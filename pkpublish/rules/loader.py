from dataclasses import dataclass
from itertools import count
from typing import Any, Dict, Iterator, List, Optional, Tuple
import json
from pkpublish.rules.filters import RowFilter, TransactionFilter
from pkpublish.rules.pattern import MatchRule, RowPattern
from pkpublish.utils.exceptions import RuleLoadError
from pkpublish.utils.logger import logger


_MISSING = object()

PUBLISH_ACTION = "publish"


@dataclass(frozen=True)
class RuleDocument:
    """An ordered, immutable set of transaction filters loaded from one document."""

    transaction_filters: Tuple[TransactionFilter, ...] = ()

    def __len__(self) -> int:
        return len(self.transaction_filters)

    def __iter__(self) -> Iterator[TransactionFilter]:
        return iter(self.transaction_filters)


@dataclass(frozen=True)
class _Actions:
    publish: bool = False
    routing_key: Optional[str] = None
    message: Optional[str] = None


def load_rules(text: str) -> RuleDocument:
    """
    Parse a rule document.

    Args:
        text: JSON text with a top-level "transaction_filters" array.

    Returns:
        RuleDocument: The parsed rules.

    Raises:
        RuleLoadError: If the text is not valid JSON or does not describe a
            valid rule set.
    """
    try:
        root = json.loads(text)
    except (TypeError, ValueError) as e:
        raise RuleLoadError(f"Rule document is not valid JSON: {e}")

    if not isinstance(root, dict):
        raise RuleLoadError("Rule document must be a JSON object")

    # Synthetic filter names are numbered per load.
    sequence = count(1)
    filters = [
        _parse_transaction_filter(node, sequence)
        for node in _fetch_array(root, "transaction_filters", "rule document")
    ]

    logger.debug(f"Loaded {len(filters)} transaction filters")
    return RuleDocument(transaction_filters=tuple(filters))


def load_rules_from_file(path: str) -> RuleDocument:
    """
    Read and parse a rule document from disk.

    Raises:
        RuleLoadError: If the file cannot be read, is not UTF-8 text, or
            cannot be parsed.
    """
    try:
        with open(path, "r", encoding="utf-8") as rule_file:
            text = rule_file.read()
    except (OSError, UnicodeDecodeError) as e:
        raise RuleLoadError(f"Unable to read rule file {path}: {e}")

    return load_rules(text)


def _parse_transaction_filter(node: Any, sequence: Iterator[int]) -> TransactionFilter:
    if not isinstance(node, dict):
        raise RuleLoadError("Each transaction filter must be a JSON object")

    name = _fetch_string(node, "name", "transaction filter", required=False)
    if not name:
        name = f"TransactionFilter-{next(sequence)}"

    context = f"transaction filter {name}"
    row_filters = tuple(
        _parse_row_filter(child, context)
        for child in _fetch_array(node, "row_filters", context)
    )
    actions = _parse_actions(node, context)

    return TransactionFilter(
        name=name,
        row_filters=row_filters,
        filter_match_rule=_parse_match_rule(
            node, "filter_match_rule", "must_match_all_filters", context
        ),
        row_match_rule=_parse_match_rule(
            node, "row_match_rule", "must_match_all_rows", context
        ),
        publish=actions.publish,
        routing_key=actions.routing_key,
        fixed_message=actions.message,
    )


def _parse_row_filter(node: Any, parent: str) -> RowFilter:
    if not isinstance(node, dict):
        raise RuleLoadError(f"Row filters of {parent} must be JSON objects")

    pattern_node = _fetch(node, "row_pattern", dict, f"row filter of {parent}")
    context = f"row pattern of {parent}"
    pattern = RowPattern.build(
        schema=_fetch_string(pattern_node, "schema", context),
        table=_fetch_string(pattern_node, "table", context),
        change_types=_fetch_array(pattern_node, "change_types", context),
    )

    name = _fetch_string(node, "name", context, required=False) or pattern.describe()
    include = _fetch(node, "include", bool, f"row filter {name}", default=True)
    actions = _parse_actions(node, f"row filter {name}")

    return RowFilter(
        name=name,
        pattern=pattern,
        include=include,
        publish=actions.publish,
        routing_key=actions.routing_key,
        fixed_message=actions.message,
    )


def _parse_actions(node: Dict[str, Any], context: str) -> _Actions:
    actions = _Actions()
    for action in _fetch_array(node, "actions", context, required=False):
        if not isinstance(action, dict):
            raise RuleLoadError(f"Actions of {context} must be JSON objects")

        action_type = _fetch_string(action, "type", f"action of {context}")
        if action_type.lower() != PUBLISH_ACTION:
            raise RuleLoadError(f"Unknown action type {action_type!r} in {context}")

        actions = _Actions(
            publish=True,
            routing_key=_fetch_string(
                action, "routing_key", f"action of {context}", required=False
            ),
            message=_fetch_string(
                action, "message", f"action of {context}", required=False
            ),
        )
    return actions


def _parse_match_rule(
    node: Dict[str, Any], rule_key: str, legacy_key: str, context: str
) -> MatchRule:
    rule = _fetch_string(node, rule_key, context, required=False)
    if rule is not None:
        return MatchRule.parse(rule)

    legacy = _fetch(node, legacy_key, bool, context, default=None)
    if legacy is None:
        return MatchRule.ALL

    mapped = MatchRule.ALL if legacy else MatchRule.ANY
    logger.warning(
        f"{context} uses deprecated {legacy_key}={str(legacy).lower()}, "
        f"treating it as {rule_key}={mapped.value}"
    )
    return mapped


def _fetch(
    node: Dict[str, Any],
    key: str,
    expected: type,
    context: str,
    default: Any = _MISSING,
) -> Any:
    value = node.get(key, _MISSING)
    if value is _MISSING or value is None:
        if default is _MISSING:
            raise RuleLoadError(f"Missing required field {key!r} in {context}")
        return default

    if not isinstance(value, expected):
        raise RuleLoadError(
            f"Field {key!r} in {context} must be of type {expected.__name__}, "
            f"got {type(value).__name__}"
        )
    return value


def _fetch_string(
    node: Dict[str, Any], key: str, context: str, required: bool = True
) -> Optional[str]:
    return _fetch(node, key, str, context, default=_MISSING if required else None)


def _fetch_array(
    node: Dict[str, Any], key: str, context: str, required: bool = True
) -> List[Any]:
    return _fetch(node, key, list, context, default=_MISSING if required else [])
