from typing import Callable, Dict, Optional
import time
from pkpublish.utils.logger import logger
from pkpublish.utils.serializer import Serializer


TOTAL_EVENT = "total_event"
NULL_EVENT = "null_event"
EMPTY_DATA_LIST = "empty_data_list"
DML_EVENT = "dml_event"
DDL_EVENT = "ddl_event"
PUBLISHED_MESSAGE = "published_message"
RULE_FILE_RELOAD = "rule_file_reload"
RULE_FILE_RELOAD_ERROR = "rule_file_reload_error"
DDL_PARSE_ERROR = "ddl_parse_error"
DB_CONNECT_ERROR = "db_connect_error"
DB_LOOKUP_ERROR = "db_lookup_error"
DB_LOOKUP_NO_PRIMARY_KEY = "db_lookup_no_primary_key"
PUBLISHING_ERROR = "publishing_error"
FORMATTING_ERROR = "formatting_error"
ERROR = "error"

# Counters that also count towards ERROR.
ERROR_COUNTERS = frozenset(
    [
        NULL_EVENT,
        RULE_FILE_RELOAD_ERROR,
        DDL_PARSE_ERROR,
        DB_CONNECT_ERROR,
        DB_LOOKUP_ERROR,
        PUBLISHING_ERROR,
        FORMATTING_ERROR,
    ]
)

COUNTERS = (
    TOTAL_EVENT,
    NULL_EVENT,
    EMPTY_DATA_LIST,
    DML_EVENT,
    DDL_EVENT,
    PUBLISHED_MESSAGE,
    RULE_FILE_RELOAD,
    RULE_FILE_RELOAD_ERROR,
    DDL_PARSE_ERROR,
    DB_CONNECT_ERROR,
    DB_LOOKUP_ERROR,
    DB_LOOKUP_NO_PRIMARY_KEY,
    PUBLISHING_ERROR,
    FORMATTING_ERROR,
    ERROR,
)


class MetricsRecorder:
    """
    Counts what the engine sees and decides when to publish a status report.

    Two clocks are involved. Report frequency is measured in event time, the
    extraction timestamps of processed transactions, so reports pace with the
    replication stream. A wall-clock floor keeps a fast catch-up from
    producing a report storm.
    """

    def __init__(
        self,
        report_interval: float = 10.0,
        error_threshold: int = 0,
        min_report_interval: float = 1.0,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the recorder.

        Args:
            report_interval: Event-time seconds between reports.
            error_threshold: Errors since the last report that force a report.
            min_report_interval: Minimum wall-clock seconds between reports.
            clock: Wall-clock source, in seconds.
        """
        self.report_interval_ms = int(report_interval * 1000)
        self.error_threshold = error_threshold
        self.min_report_interval = min_report_interval
        self._clock = clock
        self._serializer = Serializer()

        self.counters: Dict[str, int] = {name: 0 for name in COUNTERS}

        self.current_event_timestamp: Optional[int] = None
        self._last_report_event_timestamp: Optional[int] = None
        self._last_report_wall_time = clock()
        self._last_report_events = 0
        self._last_report_errors = 0
        self.report_start_time = int(self._last_report_wall_time * 1000)

    def increment(self, counter: str, amount: int = 1) -> None:
        """
        Increment a counter.

        Error-kind counters also increment the overall error counter.

        Args:
            counter: Counter name.
            amount: Increment.
        """
        if counter not in self.counters:
            raise KeyError(f"Unknown counter: {counter}")

        self.counters[counter] += amount
        if counter in ERROR_COUNTERS:
            self.counters[ERROR] += amount

    def get(self, counter: str) -> int:
        return self.counters[counter]

    def event_timestamp(self, timestamp: int) -> None:
        """Record the extraction timestamp (ms) of the transaction being processed."""
        self.current_event_timestamp = timestamp
        if self._last_report_event_timestamp is None:
            self._last_report_event_timestamp = timestamp

    def should_report(self) -> bool:
        if self._clock() - self._last_report_wall_time < self.min_report_interval:
            return False

        event_time_due = (
            self.current_event_timestamp is not None
            and self._last_report_event_timestamp is not None
            and self.current_event_timestamp - self._last_report_event_timestamp
            > self.report_interval_ms
        )
        errors_due = (
            self.counters[ERROR] - self._last_report_errors > self.error_threshold
        )
        return event_time_due or errors_due

    def make_report(self) -> str:
        """
        Produce a status report and start a new reporting period.

        Returns:
            str: The report as JSON text.
        """
        now = self._clock()
        report = {
            "reportStartTime": self.report_start_time,
            "reportEndTime": int(now * 1000),
            "eventTimestamp": self.current_event_timestamp,
            "eventsThisReport": self.counters[TOTAL_EVENT] - self._last_report_events,
            "errorsThisReport": self.counters[ERROR] - self._last_report_errors,
            "counters": dict(self.counters),
        }

        self._last_report_events = self.counters[TOTAL_EVENT]
        self._last_report_errors = self.counters[ERROR]
        self._last_report_event_timestamp = self.current_event_timestamp
        self._last_report_wall_time = now
        self.report_start_time = report["reportEndTime"]

        logger.debug(
            f"Status report: {report['eventsThisReport']} events, "
            f"{report['errorsThisReport']} errors"
        )

        return self._serializer.to_json(
            report,
            lambda: (
                '{"FallbackStatusReport":true,'
                f'"reportEndTime":{report["reportEndTime"]},'
                f'"totalEvents":{self.counters[TOTAL_EVENT]},'
                f'"totalErrors":{self.counters[ERROR]}}}'
            ),
        )
