from typing import Iterator, Optional
from pkpublish.datasources.base import DataSource
from pkpublish.events.transaction import Transaction
from pkpublish.keys.cache import TableKeyCache
from pkpublish.processing.engine import Engine
from pkpublish.rules.watcher import RuleFileWatcher
from pkpublish.streams.publisher import Publisher
from pkpublish.utils.logger import logger
from pkpublish.utils.exceptions import ProcessingError


class Coordinator:
    """
    Coordinator orchestrates the flow from the DataSource to the Engine.

    It owns the lifecycle of the collaborators: the initial rule load, the
    broker connection, the catalog connection and the data source.
    """

    def __init__(
        self,
        datasource: DataSource,
        engine: Engine,
        publisher: Publisher,
        rule_watcher: RuleFileWatcher,
        key_cache: TableKeyCache,
    ) -> None:
        """
        Initialize the Coordinator.

        Args:
            datasource: The data source to retrieve transactions from
            engine: Applies the rules to each transaction
            publisher: Delivers messages to the broker
            rule_watcher: Holds the active rule document
            key_cache: Primary key cache backed by the catalog
        """
        self.datasource = datasource
        self.engine = engine
        self.publisher = publisher
        self.rule_watcher = rule_watcher
        self.key_cache = key_cache

        self._current_iterator: Optional[Iterator[Transaction]] = None

    def start(self) -> None:
        """Load the rules, connect to the broker and then to the datasource."""
        try:
            self.rule_watcher.load_initial()
            self.publisher.mark_config_complete()
            self.publisher.connect()
            self.datasource.connect()
            logger.info("Connected to data source")
        except Exception as e:
            error_msg = f"Failed to start coordinator: {str(e)}"
            logger.error(error_msg)
            raise ProcessingError(error_msg)

    def process_next(self) -> bool:
        """
        Process the next transaction from the datasource.

        Returns:
            bool: True if a transaction was processed, False otherwise
        """
        try:
            if self._current_iterator is None:
                self._current_iterator = self.datasource.listen()

            try:
                transaction = next(self._current_iterator)
            except StopIteration:
                self._current_iterator = None
                return False

            self.engine.process(transaction)
            return True

        except Exception as e:
            error_msg = f"Error processing transactions: {str(e)}"
            logger.error(error_msg)
            raise ProcessingError(error_msg)

    def stop(self) -> None:
        """Stop the coordinator and clean up resources."""
        logger.debug("Stopping coordinator")
        try:
            self.publisher.close()
            self.key_cache.release()
            self.datasource.disconnect()
            logger.info("Coordinator stopped")
        except Exception as e:
            logger.error(f"Error stopping coordinator: {e}")
