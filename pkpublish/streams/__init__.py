from pkpublish.streams.base import Stream
from pkpublish.streams.factory import StreamFactory
from pkpublish.streams.publisher import Publisher, PublisherState, RetryPolicy
from pkpublish.streams.rabbitmq import RabbitMQ
from pkpublish.streams.sqs import SQS

# Register the broker transports with the factory
StreamFactory.register_stream("rabbitmq", RabbitMQ)
StreamFactory.register_stream("sqs", SQS)

__all__ = [
    "Stream",
    "StreamFactory",
    "Publisher",
    "PublisherState",
    "RetryPolicy",
    "RabbitMQ",
    "SQS",
]
