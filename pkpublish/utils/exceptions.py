class PKPublishError(Exception):
    """Base exception for all pkpublish related errors."""

    pass


class ConfigurationError(PKPublishError):
    """Raised when there is an issue with configuration settings."""

    pass


class UnsupportedTypeError(PKPublishError):
    """Raised when an unsupported type is requested from a factory."""

    pass


class DataSourceError(PKPublishError):
    """Raised when there is an issue with a data source operation."""

    pass


class RuleLoadError(PKPublishError):
    """Raised when a rule document cannot be read, parsed or validated."""

    pass


class CacheLookupError(PKPublishError):
    """Raised when the catalog cannot answer a primary key query."""

    pass


class FormattingError(PKPublishError):
    """Raised when a message cannot be rendered for publishing."""

    pass


class StreamError(PKPublishError):
    """Raised when there is an issue with a stream operation."""

    pass


class TransientStreamError(StreamError):
    """Raised for stream failures that a reconnect and retry may fix."""

    pass


class FatalStreamError(StreamError):
    """Raised for stream failures that retrying cannot fix."""

    pass


class DeliveryError(PKPublishError):
    """Raised when a message could not be delivered to the broker."""

    pass


class ProcessingError(PKPublishError):
    """Raised when there is an issue with data processing."""

    pass
