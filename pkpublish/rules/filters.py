from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional, Tuple
from pkpublish.events.transaction import RowChange, Transaction
from pkpublish.rules.pattern import MatchRule, RowPattern

if TYPE_CHECKING:
    from pkpublish.formatting.formatter import MessageFormatter


@dataclass(frozen=True)
class RowFilter:
    """
    A named row pattern with publish and include behaviour.

    Attributes:
        name: Filter name, derived from the pattern when the rule omits it.
        pattern: The row pattern to match.
        include: Whether matched rows are listed in the transaction message.
        publish: Whether each matched row is published on its own.
        routing_key: Fixed routing key for row messages. When unset the key is
            "<schema>.<table>.<change type>" of the matched row-change.
        fixed_message: Fixed body for row messages and for this filter's rows
            in transaction messages. When unset the body is
            built from the row's primary key.
    """

    name: str
    pattern: RowPattern
    include: bool = True
    publish: bool = False
    routing_key: Optional[str] = None
    fixed_message: Optional[str] = None

    def match(self, row_change: RowChange) -> bool:
        return self.pattern.match(row_change)

    def routing_key_for(self, row_change: RowChange) -> str:
        if self.routing_key:
            return self.routing_key
        return (
            f"{row_change.schema}.{row_change.table}."
            f"{row_change.change_type.value}"
        )

    def messages_for_match(
        self,
        row_change: RowChange,
        transaction: Transaction,
        formatter: "MessageFormatter",
    ) -> List[str]:
        """
        Bodies describing a row-change this filter matched.

        Used for both row-level messages and the rows of a transaction
        message, so a fixed message replaces the primary key body in both.
        """
        if self.fixed_message is not None:
            return [self.fixed_message]
        return formatter.messages_for_row_change(row_change, transaction)


@dataclass(frozen=True)
class TransactionFilter:
    """
    Groups row filters and decides whether a whole transaction matches.

    filter_match_rule combines over the row filters (did each one match at
    least one row-change?) and row_match_rule combines over the row-changes
    (was each one matched by at least one row filter?). Both must hold for
    the transaction to match.
    """

    name: str
    row_filters: Tuple[RowFilter, ...]
    filter_match_rule: MatchRule = MatchRule.ALL
    row_match_rule: MatchRule = MatchRule.ALL
    publish: bool = False
    routing_key: Optional[str] = None
    fixed_message: Optional[str] = None

    @property
    def effective_routing_key(self) -> str:
        return self.routing_key or self.name
