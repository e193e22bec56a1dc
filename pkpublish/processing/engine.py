from typing import Optional
from pkpublish.events.transaction import RowChange, SchemaChange, Transaction
from pkpublish.formatting.formatter import MessageFormatter
from pkpublish.keys.cache import TableKeyCache
from pkpublish.metrics import recorder
from pkpublish.metrics.recorder import MetricsRecorder
from pkpublish.rules.accumulator import MatchAccumulator
from pkpublish.rules.watcher import RuleFileWatcher
from pkpublish.streams.publisher import Publisher
from pkpublish.utils.exceptions import DeliveryError
from pkpublish.utils.logger import logger


class Engine:
    """
    Applies the active rules to each transaction and publishes the results.

    Transactions are processed one at a time in delivery order. The rule
    document is read once per transaction, so a reload never takes effect
    halfway through one.
    """

    def __init__(
        self,
        rule_watcher: RuleFileWatcher,
        key_cache: TableKeyCache,
        formatter: MessageFormatter,
        publisher: Publisher,
        metrics: MetricsRecorder,
        metrics_routing_key: str = "pkpublish.stats",
    ):
        self.rule_watcher = rule_watcher
        self.key_cache = key_cache
        self.formatter = formatter
        self.publisher = publisher
        self.metrics = metrics
        self.metrics_routing_key = metrics_routing_key

    def process(self, transaction: Optional[Transaction]) -> None:
        """
        Match one transaction against every transaction filter and publish.

        Row messages of a filter are published before its transaction
        message. DDL statements in the transaction update the key cache
        before any matching happens.

        Args:
            transaction: The transaction to process. None is counted and skipped.

        Raises:
            DeliveryError: If a message the rules selected could not be delivered.
        """
        self.metrics.increment(recorder.TOTAL_EVENT)

        if transaction is None:
            self.metrics.increment(recorder.NULL_EVENT)
            logger.debug("Skipping null transaction")
            return

        if not transaction.data:
            self.metrics.increment(recorder.EMPTY_DATA_LIST)
            logger.debug(f"Skipping transaction {transaction.event_id} with no data")
            return

        self.rule_watcher.maybe_reload(transaction.extracted_timestamp)
        self.metrics.event_timestamp(transaction.extracted_timestamp)

        for item in transaction.data:
            if isinstance(item, RowChange):
                self.metrics.increment(recorder.DML_EVENT)
            elif isinstance(item, SchemaChange):
                self.metrics.increment(recorder.DDL_EVENT)
                self.key_cache.invalidate(item)
            else:
                logger.warning(f"Unexpected item in transaction: {type(item).__name__}")

        rules = self.rule_watcher.rules
        try:
            for transaction_filter in rules:
                accumulator = MatchAccumulator.evaluate(transaction_filter, transaction)

                for routing_key, body in accumulator.row_messages_to_publish(
                    self.formatter
                ):
                    self._publish(routing_key, body)

                message = accumulator.transaction_message_to_publish(self.formatter)
                if message is not None:
                    self._publish(*message)
        except DeliveryError as e:
            self.metrics.increment(recorder.PUBLISHING_ERROR)
            logger.error(f"Delivery failed for transaction {transaction.event_id}: {e}")
            raise

        self._maybe_report()

    def _publish(self, routing_key: str, body: str) -> None:
        self.publisher.publish(routing_key, body)
        self.metrics.increment(recorder.PUBLISHED_MESSAGE)

    def _maybe_report(self) -> None:
        try:
            if self.metrics.should_report():
                self.publisher.publish(self.metrics_routing_key, self.metrics.make_report())
        except Exception as e:
            self.metrics.increment(recorder.PUBLISHING_ERROR)
            logger.warning(f"Failed to publish status report: {e}")
