from typing import Optional
import os
import pika
from pika.exceptions import (
    AMQPChannelError,
    AMQPError,
    ChannelWrongStateError,
    ConnectionWrongStateError,
)
from pkpublish.streams.base import Stream
from pkpublish.utils.logger import logger
from pkpublish.utils.exceptions import (
    ConfigurationError,
    FatalStreamError,
    TransientStreamError,
)


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class RabbitMQ(Stream):
    """
    RabbitMQ implementation of the Stream interface.

    Messages are published to one exchange, declared on every open, with the
    routing key chosen by the rules. An empty exchange name publishes through
    the broker's default exchange and skips the declaration.
    """

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        vhost: Optional[str] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        exchange: Optional[str] = None,
        exchange_type: Optional[str] = None,
        durable: Optional[bool] = None,
        heartbeat: Optional[int] = None,
        publisher_confirms: Optional[bool] = None,
    ):
        """
        Initialize the RabbitMQ stream with configuration.

        Args:
            host: Broker host. Defaults to MQ_HOST environment variable.
            port: Broker port. Defaults to MQ_PORT or 5672.
            vhost: Virtual host. Defaults to MQ_VHOST or "/".
            user: User name. Defaults to MQ_USER or "guest".
            password: Password. Defaults to MQ_PASSWORD or "guest".
            exchange: Exchange name. Defaults to MQ_EXCHANGE or "pkpublish".
            exchange_type: Exchange type. Defaults to MQ_EXCHANGE_TYPE or "topic".
            durable: Declare a durable exchange and send persistent messages.
                Defaults to MQ_EXCHANGE_DURABLE or false.
            heartbeat: Heartbeat interval in seconds. Defaults to MQ_HEARTBEAT or 60.
            publisher_confirms: Wait for broker confirms on every publish.
                Defaults to MQ_PUBLISHER_CONFIRMS or true.

        Raises:
            ConfigurationError: If the host is missing or a value is malformed.
        """
        self.host = host or os.getenv("MQ_HOST")
        if not self.host:
            raise ConfigurationError("MQ_HOST is required")

        try:
            self.port = port or int(os.getenv("MQ_PORT", "5672"))
            self.heartbeat = heartbeat or int(os.getenv("MQ_HEARTBEAT", "60"))
        except ValueError as e:
            raise ConfigurationError(f"Invalid RabbitMQ setting: {e}")

        self.vhost = vhost or os.getenv("MQ_VHOST", "/")
        self.user = user or os.getenv("MQ_USER", "guest")
        self.password = password or os.getenv("MQ_PASSWORD", "guest")
        self.exchange = (
            exchange if exchange is not None else os.getenv("MQ_EXCHANGE", "pkpublish")
        )
        self.exchange_type = exchange_type or os.getenv("MQ_EXCHANGE_TYPE", "topic")
        self.durable = (
            durable if durable is not None else _env_flag("MQ_EXCHANGE_DURABLE", "false")
        )
        self.publisher_confirms = (
            publisher_confirms
            if publisher_confirms is not None
            else _env_flag("MQ_PUBLISHER_CONFIRMS", "true")
        )

        self._connection = None
        self._channel = None

    def _connection_parameters(self) -> pika.ConnectionParameters:
        return pika.ConnectionParameters(
            host=self.host,
            port=self.port,
            virtual_host=self.vhost,
            credentials=pika.PlainCredentials(self.user, self.password),
            heartbeat=self.heartbeat,
            connection_attempts=1,
        )

    def open(self) -> None:
        """
        Connect, open a channel and declare the exchange.

        Raises:
            FatalStreamError: If the broker rejects the exchange declaration.
            TransientStreamError: If the broker cannot be reached.
        """
        self.close()
        logger.debug(f"Connecting to RabbitMQ at {self.host}:{self.port}{self.vhost}")

        try:
            self._connection = pika.BlockingConnection(self._connection_parameters())
            self._channel = self._connection.channel()

            if self.exchange:
                self._channel.exchange_declare(
                    exchange=self.exchange,
                    exchange_type=self.exchange_type,
                    durable=self.durable,
                )

            if self.publisher_confirms:
                self._channel.confirm_delivery()
        except AMQPChannelError as e:
            self.close()
            raise FatalStreamError(
                f"RabbitMQ rejected exchange {self.exchange!r}: {e!r}"
            )
        except AMQPError as e:
            self.close()
            raise TransientStreamError(f"Failed to connect to RabbitMQ: {e!r}")

        logger.info(
            f"Connected to RabbitMQ at {self.host}:{self.port}, "
            f"exchange={self.exchange!r} ({self.exchange_type})"
        )

    def send(self, routing_key: str, body: str) -> None:
        """
        Publish one message to the exchange.

        Raises:
            FatalStreamError: If the connection or channel is already closed.
            TransientStreamError: If the publish fails for any other reason.
        """
        if self._channel is None:
            raise TransientStreamError("RabbitMQ channel is not open")

        properties = pika.BasicProperties(
            content_type="application/json",
            delivery_mode=2 if self.durable else 1,
        )

        try:
            self._channel.basic_publish(
                exchange=self.exchange,
                routing_key=routing_key,
                body=body.encode("utf-8"),
                properties=properties,
            )
        except (ConnectionWrongStateError, ChannelWrongStateError) as e:
            raise FatalStreamError(f"RabbitMQ connection already closed: {e!r}")
        except AMQPError as e:
            raise TransientStreamError(f"Failed to publish to {routing_key}: {e!r}")

        logger.debug(f"Published message to {self.exchange!r} with key {routing_key}")

    def close(self) -> None:
        connection = self._connection
        self._channel = None
        self._connection = None

        if connection is None or connection.is_closed:
            return

        try:
            connection.close()
        except AMQPError as e:
            logger.debug(f"Error closing RabbitMQ connection: {e!r}")
