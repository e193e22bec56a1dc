from typing import Any, Dict, Iterator, List, Optional, Union
import os
import random
import time
import pymysql
from pymysql.cursors import Cursor
from pymysqlreplication import BinLogStreamReader
from pymysqlreplication.event import GtidEvent, QueryEvent, XidEvent
from pymysqlreplication.row_event import (
    DeleteRowsEvent,
    UpdateRowsEvent,
    WriteRowsEvent,
)
from pkpublish.datasources.base import DataSource
from pkpublish.events.transaction import (
    ChangeType,
    ColumnSpec,
    RowChange,
    SchemaChange,
    Transaction,
)
from pkpublish.utils.logger import logger
from pkpublish.utils.exceptions import DataSourceError, ConfigurationError


class MySQLSettingsValidator:
    """Validates MySQL server settings required for transaction streaming."""

    REQUIRED_SETTINGS = {
        "binlog_format": "ROW",
        "binlog_row_metadata": "FULL",
        "binlog_row_image": "FULL",
        "gtid_mode": "ON",
    }

    def __init__(
        self,
        host: Union[str, None],
        user: Union[str, None],
        password: Union[str, None],
        port: Union[int, None],
    ):
        if not host:
            raise ConfigurationError("Database host is required for validation")
        if not user:
            raise ConfigurationError("Database user is required for validation")
        if not password:
            raise ConfigurationError("Database password is required for validation")
        if not port:
            raise ConfigurationError("Database port is required for validation")

        self.host = host
        self.user = user
        self.password = password
        self.port = port

    def _fetch_actual_settings(self, cursor: Cursor) -> Dict[str, str]:
        placeholders = ", ".join(["%s"] * len(self.REQUIRED_SETTINGS))
        cursor.execute(
            f"SHOW GLOBAL VARIABLES WHERE Variable_name IN ({placeholders})",
            list(self.REQUIRED_SETTINGS.keys()),
        )

        actual_settings = {}
        for var_name, var_value in cursor.fetchall():
            if var_name is not None and var_value is not None:
                actual_settings[var_name.lower()] = var_value
        return actual_settings

    def _verify_settings(self, actual_settings: Dict[str, str]) -> None:
        for setting, expected in self.REQUIRED_SETTINGS.items():
            actual = actual_settings.get(setting)

            if actual is None:
                logger.error(f"MySQL setting {setting} not found in server variables")
                raise ConfigurationError(f"MySQL setting {setting} not found")

            if actual.upper() != expected.upper():
                logger.error(
                    f"MySQL setting {setting} is set to {actual}, expected {expected}"
                )
                raise ConfigurationError(
                    f"MySQL setting {setting} is incorrect: "
                    f"expected={expected}, actual={actual}"
                )

            logger.debug(f"MySQL setting {setting} is correctly set to {actual}")

    def validate(self) -> None:
        try:
            conn = pymysql.connect(
                host=self.host,
                user=self.user,
                password=self.password,
                port=self.port,
                connect_timeout=5,
            )
        except pymysql.MySQLError as e:
            error_msg = f"Failed to connect to MySQL: {e}"
            logger.error(error_msg)
            raise ConfigurationError(error_msg)

        try:
            with conn.cursor() as cursor:
                self._verify_settings(self._fetch_actual_settings(cursor))
        except pymysql.MySQLError as e:
            error_msg = f"Failed to validate MySQL settings: {e}"
            logger.error(error_msg)
            raise ConfigurationError(error_msg)
        finally:
            conn.close()


def _decode(value: Any) -> Optional[str]:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


class MySQLDataSource(DataSource):
    """
    Streams committed transactions from the MySQL binlog.

    Row events between a GTID event and its XID (or COMMIT) become one
    Transaction. Each DDL statement is committed on its own, so it becomes a
    Transaction holding a single SchemaChange.
    """

    def __init__(
        self,
        host: Optional[str] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        port: Optional[int] = None,
        server_id: Optional[int] = None,
        shard_id: Optional[str] = None,
    ):
        self.server_id = server_id or random.randint(10000, 1000000)
        self.host = host or os.getenv("DB_HOST")
        if not self.host:
            raise ConfigurationError("DB_HOST is required")

        self.user = user or os.getenv("DB_USER")
        if not self.user:
            raise ConfigurationError("DB_USER is required")

        self.password = password or os.getenv("DB_PASSWORD")
        if not self.password:
            raise ConfigurationError("DB_PASSWORD is required")

        self.port = port or int(os.getenv("DB_PORT", "3306"))
        self.shard_id = shard_id or os.getenv("SHARD_ID", "")
        self.binlog_client = BinLogStreamReader
        self.client = None

        self._current: Optional[Transaction] = None
        self._is_connected = False

    def _validate_settings(self) -> None:
        validator = MySQLSettingsValidator(
            host=self.host,
            user=self.user,
            password=self.password,
            port=self.port,
        )
        validator.validate()

    def _create_binlog_client(self) -> BinLogStreamReader:
        """Create a binlog stream reader client."""
        return self.binlog_client(
            connection_settings={
                "host": self.host,
                "user": self.user,
                "passwd": self.password,
                "port": self.port,
            },
            server_id=self.server_id,
            blocking=True,
            resume_stream=True,
            only_events=[
                WriteRowsEvent,
                UpdateRowsEvent,
                DeleteRowsEvent,
                GtidEvent,
                QueryEvent,
                XidEvent,
            ],
        )

    def connect(self) -> None:
        """Connect to the MySQL binlog stream."""
        if self._is_connected:
            logger.debug("Already connected to MySQL")
            return

        logger.info(f"Connecting to MySQL at {self.host}:{self.port}")

        max_retries = 5
        backoff_factor = 2

        for retry_count in range(max_retries):
            try:
                self._validate_settings()
                self.client = self._create_binlog_client()
                self._is_connected = True
                logger.info("Connected to MySQL binlog stream")
                return
            except ConfigurationError:
                raise
            except Exception as e:
                error_str = str(e)
                if "server_uuid/server_id" not in error_str:
                    error_msg = f"Failed to connect to MySQL: {error_str}"
                    logger.error(error_msg)
                    raise DataSourceError(error_msg)

                old_server_id = self.server_id
                self.server_id = (
                    random.randint(100000, 9999999) + int(time.time()) % 1000000
                )
                logger.warning(
                    f"Server ID conflict detected. Retrying with new server_id: "
                    f"{old_server_id} -> {self.server_id}"
                )
                self._close_client()

                sleep_time = (backoff_factor ** (retry_count + 1)) + random.uniform(
                    0.1, 1.0
                )
                logger.info(f"Retrying in {sleep_time:.2f} seconds...")
                time.sleep(sleep_time)

        raise DataSourceError(
            f"Failed to connect after {max_retries} attempts with different server IDs"
        )

    def _close_client(self) -> None:
        """Close the binlog client safely."""
        if self.client:
            try:
                self.client.close()
            except Exception as e:
                logger.debug(f"Error closing binlog client: {e}")
            finally:
                self.client = None

    def listen(self) -> Iterator[Transaction]:
        """
        Listen for binlog events and yield committed transactions.

        Yields:
            Transaction: Each committed transaction.
        """
        if not self._is_connected or not self.client:
            raise DataSourceError("Data source not connected")

        try:
            for event in self.client:
                if isinstance(event, GtidEvent):
                    self._current = Transaction(
                        event_id=event.gtid,
                        extracted_timestamp=int(event.timestamp) * 1000,
                        source_id=self.host,
                        shard_id=self.shard_id,
                    )
                    logger.debug(f"New transaction GTID: {event.gtid}")
                    continue

                if isinstance(event, XidEvent):
                    transaction = self._finish()
                    if transaction is not None:
                        yield transaction
                    continue

                if isinstance(event, QueryEvent):
                    transaction = self._process_query_event(event)
                    if transaction is not None:
                        yield transaction
                    continue

                if not getattr(event, "rows", None):
                    continue

                if self._current is None:
                    logger.warning("Processing row event without GTID context")
                    continue

                self._current.data.append(self._row_change(event))

        except Exception as e:
            logger.error(f"Error processing binlog: {str(e)}")
            raise DataSourceError(f"Error processing binlog: {str(e)}")

    def _finish(self) -> Optional[Transaction]:
        transaction, self._current = self._current, None
        return transaction

    def _process_query_event(self, event) -> Optional[Transaction]:
        query = _decode(event.query)
        if not isinstance(query, str):
            logger.warning(f"Query is not a string or bytes: {type(query)}")
            return None

        statement = query.strip()
        if statement.upper() == "BEGIN":
            return None
        if statement.upper() == "COMMIT":
            return self._finish()

        if self._current is None:
            self._current = Transaction(
                event_id=f"{event.packet.log_pos}",
                extracted_timestamp=int(event.timestamp) * 1000,
                source_id=self.host,
                shard_id=self.shard_id,
            )

        self._current.data.append(
            SchemaChange(query=statement, default_schema=_decode(event.schema) or None)
        )
        return self._finish()

    def _row_change(self, event) -> RowChange:
        specs = [
            ColumnSpec(name=column.name, index=position)
            for position, column in enumerate(event.columns, start=1)
        ]

        def values(image: Dict[str, Any]) -> List[Any]:
            return [image.get(spec.name) for spec in specs]

        if isinstance(event, WriteRowsEvent):
            return RowChange(
                schema=event.schema,
                table=event.table,
                change_type=ChangeType.INSERT,
                column_specs=specs,
                column_values=[values(row["values"]) for row in event.rows],
                table_id=event.table_id,
            )

        if isinstance(event, UpdateRowsEvent):
            return RowChange(
                schema=event.schema,
                table=event.table,
                change_type=ChangeType.UPDATE,
                column_specs=specs,
                column_values=[values(row["after_values"]) for row in event.rows],
                key_specs=specs,
                key_values=[values(row["before_values"]) for row in event.rows],
                table_id=event.table_id,
            )

        return RowChange(
            schema=event.schema,
            table=event.table,
            change_type=ChangeType.DELETE,
            key_specs=specs,
            key_values=[values(row["values"]) for row in event.rows],
            table_id=event.table_id,
        )

    def disconnect(self) -> None:
        """Disconnect from MySQL binlog stream."""
        if not self._is_connected:
            return

        logger.info("Disconnecting from MySQL")
        self._is_connected = False
        self._current = None
        self._close_client()

    def get_source_id(self) -> str:
        """Get the data source identifier."""
        if not self.host:
            raise DataSourceError("No host configured")
        return self.host
