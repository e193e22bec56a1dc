from typing import TYPE_CHECKING, Dict, List, Optional, Tuple
from pkpublish.events.transaction import RowChange, Transaction
from pkpublish.rules.filters import RowFilter, TransactionFilter
from pkpublish.utils.logger import logger

if TYPE_CHECKING:
    from pkpublish.formatting.formatter import MessageFormatter


class MatchAccumulator:
    """
    Match results of one transaction filter against one transaction.

    Every row filter starts out unmatched, so a filter that never matches
    still counts against ALL. Row-changes are tracked by their position in
    the transaction, so identical row-changes stay distinct.
    """

    def __init__(self, transaction_filter: TransactionFilter, transaction: Transaction):
        self.transaction_filter = transaction_filter
        self.transaction = transaction
        self.matched_pairs: List[Tuple[RowChange, RowFilter]] = []
        self._row_filter_matched: Dict[int, bool] = {
            position: False
            for position in range(len(transaction_filter.row_filters))
        }
        self._row_change_matched: Dict[int, bool] = {}

    @classmethod
    def evaluate(
        cls, transaction_filter: TransactionFilter, transaction: Transaction
    ) -> "MatchAccumulator":
        """
        Run every row filter against every row-change of the transaction.

        Schema-change statements take no part in matching.

        Args:
            transaction_filter: The filter to evaluate.
            transaction: The transaction to evaluate it against.

        Returns:
            MatchAccumulator: The recorded results.
        """
        accumulator = cls(transaction_filter, transaction)
        for row_position, row_change in enumerate(transaction.row_changes):
            for filter_position, row_filter in enumerate(
                transaction_filter.row_filters
            ):
                accumulator.record(
                    row_position,
                    row_change,
                    filter_position,
                    row_filter,
                    row_filter.match(row_change),
                )
        return accumulator

    def record(
        self,
        row_position: int,
        row_change: RowChange,
        filter_position: int,
        row_filter: RowFilter,
        matched: bool,
    ) -> None:
        self._row_filter_matched[filter_position] = (
            self._row_filter_matched.get(filter_position, False) or matched
        )
        self._row_change_matched[row_position] = (
            self._row_change_matched.get(row_position, False) or matched
        )
        if matched:
            self.matched_pairs.append((row_change, row_filter))

    @property
    def all_row_filters_matched(self) -> bool:
        return all(self._row_filter_matched.values())

    @property
    def any_row_filters_matched(self) -> bool:
        return any(self._row_filter_matched.values())

    @property
    def all_row_changes_matched(self) -> bool:
        return all(self._row_change_matched.values())

    @property
    def any_row_changes_matched(self) -> bool:
        return any(self._row_change_matched.values())

    def matched(self) -> bool:
        """Return the transaction-level verdict for both match axes."""
        rules = self.transaction_filter
        return rules.filter_match_rule.combine(
            self.all_row_filters_matched, self.any_row_filters_matched
        ) and rules.row_match_rule.combine(
            self.all_row_changes_matched, self.any_row_changes_matched
        )

    def row_messages_to_publish(
        self, formatter: "MessageFormatter"
    ) -> List[Tuple[str, str]]:
        """
        Build the row-level messages for every matched publishing row filter.

        These do not depend on the transaction-level verdict.

        Args:
            formatter: Renders primary key messages for row-changes.

        Returns:
            List[Tuple[str, str]]: (routing key, body) pairs in match order.
        """
        messages = []
        for row_change, row_filter in self.matched_pairs:
            if not row_filter.publish:
                continue

            routing_key = row_filter.routing_key_for(row_change)
            for body in row_filter.messages_for_match(
                row_change, self.transaction, formatter
            ):
                messages.append((routing_key, body))

        return messages

    def transaction_message_to_publish(
        self, formatter: "MessageFormatter"
    ) -> Optional[Tuple[str, str]]:
        """
        Build the transaction-level message when the filter matched and publishes.

        Args:
            formatter: Renders the transaction document.

        Returns:
            Optional[Tuple[str, str]]: (routing key, body), or None.
        """
        if not self.transaction_filter.publish or not self.matched():
            return None

        logger.debug(
            f"Transaction {self.transaction.event_id} matched filter "
            f"{self.transaction_filter.name}"
        )
        return (
            self.transaction_filter.effective_routing_key,
            formatter.format_transaction(self),
        )
