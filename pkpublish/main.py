import signal
from typing import Any
from dotenv import load_dotenv

from pkpublish.utils.logger import Logger
from pkpublish.config.loader import AppConfig
from pkpublish.datasources import DataSourceFactory
from pkpublish.formatting.formatter import MessageFormatter
from pkpublish.keys.cache import TableKeyCache
from pkpublish.keys.catalog import MySQLCatalog
from pkpublish.metrics.recorder import MetricsRecorder
from pkpublish.processing.coordinator import Coordinator
from pkpublish.processing.engine import Engine
from pkpublish.processing.worker import Worker
from pkpublish.rules.watcher import RuleFileWatcher
from pkpublish.streams import Publisher, RetryPolicy, StreamFactory


def build_worker(app_config: AppConfig) -> Worker:
    """
    Wire every component from the application configuration.

    Args:
        app_config: Loaded configuration.

    Returns:
        Worker: A worker ready to run.
    """
    metrics = MetricsRecorder(
        report_interval=app_config.status_message_interval,
        error_threshold=app_config.status_error_threshold,
        min_report_interval=app_config.status_min_report_interval,
    )
    key_cache = TableKeyCache(
        catalog=MySQLCatalog(),
        metrics=metrics,
        reconnect_interval=app_config.catalog_reconnect_interval,
    )
    rule_watcher = RuleFileWatcher(
        path=app_config.rule_file,
        metrics=metrics,
        check_interval=app_config.rule_file_check_interval,
    )
    publisher = Publisher(
        StreamFactory.create(app_config.stream_type),
        RetryPolicy(
            max_attempts=app_config.publish_retry_limit,
            delay=app_config.publish_recovery_interval,
        ),
    )
    engine = Engine(
        rule_watcher=rule_watcher,
        key_cache=key_cache,
        formatter=MessageFormatter(key_cache, metrics),
        publisher=publisher,
        metrics=metrics,
        metrics_routing_key=app_config.metrics_routing_key,
    )

    coordinator = Coordinator(
        datasource=DataSourceFactory.create(app_config.datasource_type),
        engine=engine,
        publisher=publisher,
        rule_watcher=rule_watcher,
        key_cache=key_cache,
    )
    return Worker(coordinator)


def main() -> None:
    """
    Main entry point for the pkpublish application.

    Loads configuration, sets up the logger, builds the pipeline and runs the
    worker until a shutdown signal arrives.
    """
    load_dotenv()

    logger = Logger.get_logger()
    app_config = AppConfig.load()
    Logger.update_level(app_config.log_level)

    worker = build_worker(app_config)

    def signal_handler(sig: Any, _frame: Any) -> None:
        logger.info("Shutdown signal received")
        worker.stop()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    worker.run()


if __name__ == "__main__":
    main()
