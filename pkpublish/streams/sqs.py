from typing import Any, Optional
import boto3
import os
from threading import Lock
from boto3.session import Session
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from pkpublish.streams.base import Stream
from pkpublish.utils.logger import logger
from pkpublish.utils.exceptions import (
    ConfigurationError,
    FatalStreamError,
    TransientStreamError,
)


class SQS(Stream):
    """
    AWS SQS implementation of the Stream interface.

    SQS has no exchange, so every message goes to one queue and the routing
    key travels as a message attribute for consumers to filter on.
    """

    # SQS individual message size limit in bytes
    SQS_MAX_MESSAGE_SIZE = 256 * 1024

    # Error codes that mean the queue itself is unusable
    FATAL_ERROR_CODES = (
        "AWS.SimpleQueueService.NonExistentQueue",
        "QueueDoesNotExist",
        "AccessDenied",
        "AccessDeniedException",
        "InvalidClientTokenId",
    )

    def __init__(
        self,
        queue_url: Optional[str] = None,
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        aws_access_key_id: Optional[str] = None,
        aws_secret_access_key: Optional[str] = None,
        source: Optional[str] = None,
    ):
        """
        Initialize the SQS stream with configuration.

        Args:
            queue_url: The URL of the SQS queue. Defaults to SQS_QUEUE_URL
                environment variable.
            region: The AWS region. Defaults to AWS_REGION environment variable.
            endpoint_url: The AWS endpoint URL. Defaults to AWS_ENDPOINT_URL
                environment variable.
            aws_access_key_id: The AWS access key ID. Defaults to AWS_ACCESS_KEY_ID
                environment variable.
            aws_secret_access_key: The AWS secret access key. Defaults to
                AWS_SECRET_ACCESS_KEY environment variable.
            source: The source identifier for the messages. Defaults to SOURCE
                 environment variable.

        Raises:
            ConfigurationError: If any required configuration parameter is missing.
        """
        self.source = source or os.getenv("SOURCE") or "pkpublish"

        self.queue_url = queue_url or os.getenv("SQS_QUEUE_URL")
        if not self.queue_url:
            raise ConfigurationError("SQS_QUEUE_URL is required")

        self.region = region or os.getenv("AWS_REGION")
        if not self.region:
            raise ConfigurationError("AWS_REGION is required")

        self.endpoint_url = endpoint_url or os.getenv("AWS_ENDPOINT_URL")

        self.aws_access_key_id = aws_access_key_id or os.getenv("AWS_ACCESS_KEY_ID")
        if not self.aws_access_key_id:
            raise ConfigurationError("AWS_ACCESS_KEY_ID is required")

        self.aws_secret_access_key = aws_secret_access_key or os.getenv(
            "AWS_SECRET_ACCESS_KEY"
        )
        if not self.aws_secret_access_key:
            raise ConfigurationError("AWS_SECRET_ACCESS_KEY is required")

        self._client = None
        self._client_lock = Lock()
        self._session = None

    def _create_session(self) -> Session:
        """
        Create a boto3 session with the configured credentials.

        Returns:
            Session: The configured boto3 session.
        """
        if self._session is None:
            self._session = boto3.session.Session(
                region_name=self.region,
                aws_access_key_id=self.aws_access_key_id,
                aws_secret_access_key=self.aws_secret_access_key,
            )
        return self._session

    def _get_client(self) -> Any:
        """
        Get or create the boto3 SQS client.

        Retries are left to the Publisher, so the client itself does not retry.

        Returns:
            Any: The configured boto3 SQS client.
        """
        if self._client is None:
            with self._client_lock:
                if self._client is None:
                    session = self._create_session()

                    config = Config(
                        connect_timeout=3,
                        read_timeout=5,
                        retries={"max_attempts": 1},
                        tcp_keepalive=True,
                    )

                    self._client = session.client(
                        "sqs", endpoint_url=self.endpoint_url, config=config
                    )

                    logger.debug(
                        f"Setup SQS client: {self.queue_url} - {self.endpoint_url} "
                        f"- {self.region}"
                    )

        return self._client

    def _classify(self, action: str, error: Exception) -> Exception:
        if isinstance(error, ClientError):
            code = error.response.get("Error", {}).get("Code", "")
            if code in self.FATAL_ERROR_CODES:
                return FatalStreamError(f"SQS {action} failed with {code}: {error}")
        return TransientStreamError(f"SQS {action} failed: {error}")

    def open(self) -> None:
        """
        Check that the queue exists and is reachable.

        Raises:
            FatalStreamError: If the queue does not exist or access is denied.
            TransientStreamError: If SQS cannot be reached.
        """
        client = self._get_client()
        try:
            client.get_queue_attributes(
                QueueUrl=self.queue_url, AttributeNames=["QueueArn"]
            )
        except (ClientError, BotoCoreError) as e:
            raise self._classify("queue check", e)

        logger.info(f"Connected to SQS queue {self.queue_url}")

    def send(self, routing_key: str, body: str) -> None:
        """
        Send one message to the queue.

        Raises:
            FatalStreamError: If the message is too large or the queue is unusable.
            TransientStreamError: If the send fails for any other reason.
        """
        message_size = len(body.encode("utf-8"))
        if message_size > self.SQS_MAX_MESSAGE_SIZE:
            raise FatalStreamError(
                f"Message for {routing_key} is {message_size} bytes, "
                f"above the SQS limit of {self.SQS_MAX_MESSAGE_SIZE}"
            )

        client = self._get_client()
        try:
            response = client.send_message(
                QueueUrl=self.queue_url,
                MessageBody=body,
                MessageAttributes={
                    "routing_key": {"StringValue": routing_key, "DataType": "String"},
                    "source": {"StringValue": self.source, "DataType": "String"},
                },
            )
        except (ClientError, BotoCoreError) as e:
            raise self._classify("send_message", e)

        logger.debug(
            f"Sent message {response.get('MessageId')} to SQS with key {routing_key}"
        )

    def close(self) -> None:
        """
        Clean up resources.

        No persistent resources to close for SQS connections.
        """
        pass
