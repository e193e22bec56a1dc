import os
import pytest
from unittest.mock import MagicMock, patch
from pika.exceptions import (
    AMQPConnectionError,
    ChannelClosedByBroker,
    ChannelWrongStateError,
    StreamLostError,
)
from pkpublish.streams.rabbitmq import RabbitMQ
from pkpublish.utils.exceptions import (
    ConfigurationError,
    FatalStreamError,
    TransientStreamError,
)


class TestRabbitMQ:
    """Test cases for the RabbitMQ transport"""

    @pytest.fixture
    def channel(self):
        return MagicMock()

    @pytest.fixture
    def connection(self, channel):
        connection = MagicMock()
        connection.channel.return_value = channel
        connection.is_closed = False
        return connection

    @pytest.fixture
    def mock_blocking_connection(self, connection):
        with patch(
            "pkpublish.streams.rabbitmq.pika.BlockingConnection",
            return_value=connection,
        ) as mock:
            yield mock

    @pytest.fixture
    def rabbit(self):
        with patch.dict(os.environ, {}, clear=True):
            return RabbitMQ(host="mq", exchange="cdc", durable=True)

    def test_requires_host(self):
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ConfigurationError) as exc_info:
                RabbitMQ()

            assert "MQ_HOST is required" in str(exc_info.value)

    def test_env_configuration(self):
        env = {
            "MQ_HOST": "rabbit",
            "MQ_PORT": "5673",
            "MQ_VHOST": "/cdc",
            "MQ_USER": "pk",
            "MQ_PASSWORD": "secret",
            "MQ_EXCHANGE": "changes",
            "MQ_EXCHANGE_TYPE": "direct",
            "MQ_EXCHANGE_DURABLE": "true",
            "MQ_PUBLISHER_CONFIRMS": "false",
        }
        with patch.dict(os.environ, env, clear=True):
            rabbit = RabbitMQ()

        assert rabbit.host == "rabbit"
        assert rabbit.port == 5673
        assert rabbit.vhost == "/cdc"
        assert rabbit.exchange == "changes"
        assert rabbit.exchange_type == "direct"
        assert rabbit.durable is True
        assert rabbit.publisher_confirms is False

    def test_invalid_port(self):
        with patch.dict(os.environ, {"MQ_HOST": "mq", "MQ_PORT": "x"}, clear=True):
            with pytest.raises(ConfigurationError):
                RabbitMQ()

    def test_open_declares_exchange(self, rabbit, mock_blocking_connection, channel):
        rabbit.open()

        mock_blocking_connection.assert_called_once()
        channel.exchange_declare.assert_called_once_with(
            exchange="cdc", exchange_type="topic", durable=True
        )
        channel.confirm_delivery.assert_called_once()

    def test_open_default_exchange_skips_declare(self, mock_blocking_connection, channel):
        with patch.dict(os.environ, {}, clear=True):
            rabbit = RabbitMQ(host="mq", exchange="")

        rabbit.open()

        channel.exchange_declare.assert_not_called()

    def test_open_unreachable_is_transient(self, rabbit):
        with patch(
            "pkpublish.streams.rabbitmq.pika.BlockingConnection",
            side_effect=AMQPConnectionError("refused"),
        ):
            with pytest.raises(TransientStreamError):
                rabbit.open()

    def test_open_rejected_declare_is_fatal(
        self, rabbit, mock_blocking_connection, channel, connection
    ):
        channel.exchange_declare.side_effect = ChannelClosedByBroker(406, "PRECONDITION")

        with pytest.raises(FatalStreamError):
            rabbit.open()

        connection.close.assert_called_once()

    def test_send(self, rabbit, mock_blocking_connection, channel):
        rabbit.open()

        rabbit.send("sales.orders.INSERT", '{"a":1}')

        kwargs = channel.basic_publish.call_args.kwargs
        assert kwargs["exchange"] == "cdc"
        assert kwargs["routing_key"] == "sales.orders.INSERT"
        assert kwargs["body"] == b'{"a":1}'
        assert kwargs["properties"].delivery_mode == 2
        assert kwargs["properties"].content_type == "application/json"

    def test_send_before_open_is_transient(self, rabbit):
        with pytest.raises(TransientStreamError):
            rabbit.send("rk", "body")

    def test_send_on_closed_channel_is_fatal(self, rabbit, mock_blocking_connection, channel):
        rabbit.open()
        channel.basic_publish.side_effect = ChannelWrongStateError("closed")

        with pytest.raises(FatalStreamError):
            rabbit.send("rk", "body")

    def test_send_io_failure_is_transient(self, rabbit, mock_blocking_connection, channel):
        rabbit.open()
        channel.basic_publish.side_effect = StreamLostError("reset")

        with pytest.raises(TransientStreamError):
            rabbit.send("rk", "body")

    def test_close(self, rabbit, mock_blocking_connection, connection):
        rabbit.open()

        rabbit.close()
        rabbit.close()

        connection.close.assert_called_once()
