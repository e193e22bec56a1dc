from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Iterable
from pkpublish.events.transaction import ChangeType, RowChange
from pkpublish.utils.exceptions import RuleLoadError


WILDCARD = "*"


class MatchRule(Enum):
    """How per-item match results combine into one verdict."""

    ALL = "ALL"
    ANY = "ANY"
    NONE = "NONE"

    @classmethod
    def parse(cls, value: str) -> "MatchRule":
        """
        Parse a rule name, ignoring case.

        Raises:
            RuleLoadError: If the value is not ALL, ANY or NONE.
        """
        try:
            return cls(value.upper())
        except (AttributeError, ValueError):
            raise RuleLoadError(f"Invalid match rule: {value!r}")

    def combine(self, all_matched: bool, any_matched: bool) -> bool:
        if self is MatchRule.ALL:
            return all_matched
        if self is MatchRule.ANY:
            return any_matched
        return not any_matched


@dataclass(frozen=True)
class RowPattern:
    """
    Selects row-changes by schema, table and change type.

    Schema and table are compared case-insensitively and "*" matches
    anything on its dimension. change_types holds upper-cased tokens, one of
    INSERT, UPDATE, DELETE or "*".
    """

    schema: str
    table: str
    change_types: FrozenSet[str]

    @classmethod
    def build(cls, schema: str, table: str, change_types: Iterable[str]) -> "RowPattern":
        """
        Build a pattern from raw rule values.

        Args:
            schema: Schema name or "*".
            table: Table name or "*".
            change_types: Change type tokens in any case.

        Returns:
            RowPattern: The normalized pattern.

        Raises:
            RuleLoadError: If no change type is given or a token is unknown.
        """
        tokens = []
        for token in change_types:
            if not isinstance(token, str):
                raise RuleLoadError(f"Change type must be a string: {token!r}")
            normalized = token.strip().upper()
            if normalized != WILDCARD and normalized not in ChangeType.__members__:
                raise RuleLoadError(f"Unknown change type: {token!r}")
            if normalized not in tokens:
                tokens.append(normalized)

        if not tokens:
            raise RuleLoadError(
                f"Row pattern {schema}.{table} needs at least one change type"
            )

        return cls(schema=schema, table=table, change_types=frozenset(tokens))

    def describe(self) -> str:
        """Render the pattern as "<schema>.<table>.<types>"."""
        ordered = [t.value for t in ChangeType if t.value in self.change_types]
        if WILDCARD in self.change_types:
            ordered.insert(0, WILDCARD)
        return f"{self.schema}.{self.table}.{','.join(ordered)}"

    def match(self, row_change: RowChange) -> bool:
        return (
            self._match_change_type(row_change.change_type)
            and self._match_name(self.schema, row_change.schema)
            and self._match_name(self.table, row_change.table)
        )

    def _match_change_type(self, change_type: ChangeType) -> bool:
        return WILDCARD in self.change_types or change_type.value in self.change_types

    @staticmethod
    def _match_name(expected: str, actual: str) -> bool:
        if expected == WILDCARD:
            return True
        return actual is not None and expected.upper() == actual.upper()
