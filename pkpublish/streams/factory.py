from typing import Dict, ClassVar, Type
from pkpublish.streams.base import Stream
from pkpublish.utils.factory import ComponentFactory


class StreamFactory(ComponentFactory):
    """Factory for broker transports, selected by STREAM_TYPE."""

    KIND = "stream"
    REGISTRY: ClassVar[Dict[str, Type[Stream]]] = {}

    @classmethod
    def register_stream(cls, name: str, stream_class: Type[Stream]) -> None:
        cls.register(name, stream_class)
