from abc import ABC, abstractmethod
from typing import Iterator
from pkpublish.events.transaction import Transaction


class DataSource(ABC):
    """
    Base abstract class for all transaction sources.

    A data source connects to a database change log and yields committed
    transactions in commit order.
    """

    @abstractmethod
    def connect(self) -> None:
        """
        Connect to the data source.

        Raises:
            DataSourceError: If connection fails.
        """
        pass

    @abstractmethod
    def listen(self) -> Iterator[Transaction]:
        """
        Listen for changes from the data source.

        Yields:
            Transaction: Committed transactions in commit order.

        Raises:
            DataSourceError: If listening fails.
        """
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """
        Disconnect from the data source.

        This method should close any open connections or resources.
        """
        pass

    @abstractmethod
    def get_source_id(self) -> str:
        """
        Get the unique identifier for this datasource instance.

        Returns:
            str: A string uniquely identifying this datasource instance.
        """
        pass
