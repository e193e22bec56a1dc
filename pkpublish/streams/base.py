from abc import ABC, abstractmethod


class Stream(ABC):
    """
    Base abstract class for all broker transports.

    A transport owns one connection to a broker destination. It reports
    failures as TransientStreamError when reconnecting may help, and as
    FatalStreamError when it cannot. Retrying is left to the Publisher.
    """

    @abstractmethod
    def open(self) -> None:
        """
        Open the connection and declare the destination.

        Raises:
            StreamError: If the connection or declaration fails.
        """
        pass

    @abstractmethod
    def send(self, routing_key: str, body: str) -> None:
        """
        Send one message.

        Args:
            routing_key (str): Routing key for the message.
            body (str): Message body.

        Raises:
            StreamError: If the send operation fails.
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """
        Close any open connections or resources.

        Closing a transport that is not open does nothing.
        """
        pass
