from dataclasses import dataclass
import os
from pkpublish.utils.logger import logger
from pkpublish.utils.exceptions import ConfigurationError


@dataclass
class AppConfig(object):
    """
    Application-wide configuration.

    This class represents the configuration for the entire application:
    logging level, rule file location and reload pacing, broker retry policy,
    status report pacing and catalog reconnect interval.
    """

    log_level: str
    rule_file: str
    rule_file_check_interval: float
    stream_type: str
    datasource_type: str
    publish_retry_limit: int
    publish_recovery_interval: float
    status_message_interval: float
    status_error_threshold: int
    status_min_report_interval: float
    metrics_routing_key: str
    catalog_reconnect_interval: float

    @classmethod
    def load(cls) -> "AppConfig":
        """
        Create an AppConfig instance from environment variables.

        Returns:
            AppConfig: Configured instance with values from environment variables
                      or defaults if the environment variables are not set.

        Raises:
            ConfigurationError: If RULE_FILE is missing or a value is malformed.
        """
        rule_file = os.getenv("RULE_FILE")
        if not rule_file:
            raise ConfigurationError("RULE_FILE is required")

        try:
            config = cls(
                log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
                rule_file=rule_file,
                rule_file_check_interval=float(
                    os.getenv("RULE_FILE_CHECK_INTERVAL", "30")
                ),
                stream_type=os.getenv("STREAM_TYPE", "rabbitmq").lower(),
                datasource_type=os.getenv("DS_TYPE", "mysql").lower(),
                publish_retry_limit=int(os.getenv("PUBLISH_RETRY_LIMIT", "3")),
                publish_recovery_interval=float(
                    os.getenv("PUBLISH_RECOVERY_INTERVAL", "5.0")
                ),
                status_message_interval=float(
                    os.getenv("STATUS_MESSAGE_INTERVAL", "5")
                ),
                status_error_threshold=int(os.getenv("STATUS_ERROR_THRESHOLD", "0")),
                status_min_report_interval=float(
                    os.getenv("STATUS_MIN_REPORT_INTERVAL", "1")
                ),
                metrics_routing_key=os.getenv("METRICS_ROUTING_KEY", "pkpublish.stats"),
                catalog_reconnect_interval=float(
                    os.getenv("CATALOG_RECONNECT_INTERVAL", "10")
                ),
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid configuration value: {e}")

        if config.publish_retry_limit < 1:
            raise ConfigurationError("PUBLISH_RETRY_LIMIT must be at least 1")

        logger.info(
            f"Config: log_level={config.log_level}, rule_file={config.rule_file}, "
            f"stream={config.stream_type}, datasource={config.datasource_type}, "
            f"retry_limit={config.publish_retry_limit}, "
            f"status_interval={config.status_message_interval}"
        )

        return config
