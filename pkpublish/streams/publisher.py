from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional
import time
from pkpublish.streams.base import Stream
from pkpublish.utils.logger import logger
from pkpublish.utils.exceptions import (
    ConfigurationError,
    DeliveryError,
    FatalStreamError,
    StreamError,
)


class PublisherState(Enum):
    UNCONFIGURED = "UNCONFIGURED"
    CONFIG_COMPLETE = "CONFIG_COMPLETE"
    CONNECTED = "CONNECTED"
    DISCONNECTED = "DISCONNECTED"
    CLOSED = "CLOSED"


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded retry schedule for broker operations.

    Attributes:
        max_attempts: Total attempts per operation, at least 1.
        delay: Seconds to wait between attempts. There is no wait after the
            last attempt.
    """

    max_attempts: int = 3
    delay: float = 5.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ConfigurationError("Retry policy needs at least one attempt")
        if self.delay < 0:
            raise ConfigurationError("Retry delay cannot be negative")


class Publisher:
    """
    Reliable delivery on top of a Stream transport.

    The publisher moves through UNCONFIGURED, CONFIG_COMPLETE, CONNECTED and
    DISCONNECTED, and ends in CLOSED. Connecting and publishing are retried
    according to the retry policy. A FatalStreamError from the transport
    aborts at once, and running out of attempts raises DeliveryError.
    """

    def __init__(
        self,
        stream: Stream,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.stream = stream
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep
        self.state = PublisherState.UNCONFIGURED

    @property
    def connected(self) -> bool:
        return self.state is PublisherState.CONNECTED

    def mark_config_complete(self) -> None:
        """Declare the publisher configured, allowing connect()."""
        if self.state is PublisherState.CLOSED:
            raise DeliveryError("Publisher is closed")
        if self.state is PublisherState.UNCONFIGURED:
            self.state = PublisherState.CONFIG_COMPLETE

    def connect(self) -> None:
        """
        Connect the transport, retrying according to the retry policy.

        Raises:
            DeliveryError: If configuration is incomplete, the publisher is
                closed, the failure is fatal, or every attempt failed.
        """
        self._check_usable("connect")

        attempts = self.retry_policy.max_attempts
        last_error = None
        for attempt in range(1, attempts + 1):
            try:
                self._open()
                return
            except FatalStreamError as e:
                logger.error(f"Fatal error connecting to broker: {e}")
                raise DeliveryError(f"Unable to connect to broker: {e}")
            except StreamError as e:
                last_error = e
                logger.warning(
                    f"Broker connect attempt {attempt}/{attempts} failed: {e}"
                )
                self._pause(attempt)

        raise DeliveryError(
            f"Unable to connect to broker after {attempts} attempts: {last_error}"
        )

    def publish(self, routing_key: str, body: str) -> None:
        """
        Send one message, reconnecting first whenever the transport is down.

        Args:
            routing_key: Routing key for the message.
            body: Message body.

        Raises:
            DeliveryError: If the message could not be delivered.
        """
        self._check_usable("publish")

        attempts = self.retry_policy.max_attempts
        last_error = None
        for attempt in range(1, attempts + 1):
            try:
                if not self.connected:
                    self._open()
                self.stream.send(routing_key, body)
                return
            except FatalStreamError as e:
                self.state = PublisherState.DISCONNECTED
                logger.error(f"Fatal error publishing to {routing_key}: {e}")
                raise DeliveryError(f"Unable to publish to {routing_key}: {e}")
            except StreamError as e:
                self.state = PublisherState.DISCONNECTED
                last_error = e
                logger.warning(
                    f"Publish attempt {attempt}/{attempts} to {routing_key} failed: {e}"
                )
                self._pause(attempt)

        raise DeliveryError(
            f"Unable to publish to {routing_key} after {attempts} attempts: "
            f"{last_error}"
        )

    def close(self) -> None:
        if self.state is PublisherState.CLOSED:
            return
        self.stream.close()
        self.state = PublisherState.CLOSED
        logger.info("Publisher closed")

    def _check_usable(self, operation: str) -> None:
        if self.state is PublisherState.UNCONFIGURED:
            raise DeliveryError(
                f"Cannot {operation} before configuration is marked complete"
            )
        if self.state is PublisherState.CLOSED:
            raise DeliveryError(f"Cannot {operation} on a closed publisher")

    def _open(self) -> None:
        if self.state is PublisherState.CONNECTED:
            self.stream.close()
        self.state = PublisherState.DISCONNECTED
        self.stream.open()
        self.state = PublisherState.CONNECTED

    def _pause(self, attempt: int) -> None:
        if attempt < self.retry_policy.max_attempts and self.retry_policy.delay > 0:
            self._sleep(self.retry_policy.delay)
