from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional
import os
import pymysql
from pkpublish.utils.exceptions import CacheLookupError, ConfigurationError
from pkpublish.utils.logger import logger


# JDBC type codes, as carried in the columnType field of row messages.
SQL_TYPE_CODES: Dict[str, int] = {
    "bit": -7,
    "tinyint": -6,
    "smallint": 5,
    "mediumint": 4,
    "int": 4,
    "integer": 4,
    "bigint": -5,
    "float": 7,
    "double": 8,
    "real": 8,
    "decimal": 3,
    "numeric": 2,
    "char": 1,
    "varchar": 12,
    "tinytext": -1,
    "text": -1,
    "mediumtext": -1,
    "longtext": -1,
    "binary": -2,
    "varbinary": -3,
    "tinyblob": -4,
    "blob": -4,
    "mediumblob": -4,
    "longblob": -4,
    "date": 91,
    "time": 92,
    "datetime": 93,
    "timestamp": 93,
    "year": 91,
    "enum": 1,
    "set": 1,
    "json": -1,
}
OTHER_TYPE_CODE = 1111


@dataclass(frozen=True)
class KeyColumn:
    """
    One primary key column.

    Attributes:
        column_name: Column name.
        column_index: 1-based ordinal position of the column in its table.
        column_type: JDBC type code of the column.
        column_type_name: Declared column type, e.g. "int(11) unsigned".
    """

    column_name: str
    column_index: int
    column_type: int
    column_type_name: str


class CatalogSource(ABC):
    """Answers primary key questions about tables."""

    @abstractmethod
    def connect(self) -> None:
        """
        Open a connection to the catalog.

        Raises:
            CacheLookupError: If the connection cannot be opened.
        """
        pass

    @abstractmethod
    def primary_key(self, schema: str, table: str) -> Optional[List[KeyColumn]]:
        """
        Fetch a table's primary key columns, ordered by key position.

        Returns:
            Optional[List[KeyColumn]]: The key columns, an empty list when the
                table has no primary key, or None when the table does not exist.

        Raises:
            CacheLookupError: If the catalog query fails.
        """
        pass

    @abstractmethod
    def close(self) -> None:
        pass


class MySQLCatalog(CatalogSource):
    """Reads primary key metadata from MySQL's information_schema."""

    TABLE_EXISTS_QUERY = (
        "SELECT 1 FROM information_schema.TABLES "
        "WHERE TABLE_SCHEMA = %s AND TABLE_NAME = %s"
    )

    PRIMARY_KEY_QUERY = (
        "SELECT k.COLUMN_NAME, c.ORDINAL_POSITION, c.DATA_TYPE, c.COLUMN_TYPE "
        "FROM information_schema.KEY_COLUMN_USAGE k "
        "JOIN information_schema.COLUMNS c "
        "ON c.TABLE_SCHEMA = k.TABLE_SCHEMA "
        "AND c.TABLE_NAME = k.TABLE_NAME "
        "AND c.COLUMN_NAME = k.COLUMN_NAME "
        "WHERE k.TABLE_SCHEMA = %s AND k.TABLE_NAME = %s "
        "AND k.CONSTRAINT_NAME = 'PRIMARY' "
        "ORDER BY k.ORDINAL_POSITION"
    )

    def __init__(
        self,
        host: Optional[str] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        port: Optional[int] = None,
        connect_timeout: int = 5,
    ):
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
        self.connect_timeout = connect_timeout
        self.conn = None

    def connect(self) -> None:
        self.close()
        try:
            self.conn = pymysql.connect(
                host=self.host,
                user=self.user,
                password=self.password,
                port=self.port,
                connect_timeout=self.connect_timeout,
            )
        except pymysql.MySQLError as e:
            raise CacheLookupError(f"Failed to connect to catalog: {e}")
        logger.debug(f"Connected to catalog at {self.host}:{self.port}")

    def primary_key(self, schema: str, table: str) -> Optional[List[KeyColumn]]:
        if self.conn is None:
            self.connect()

        try:
            with self.conn.cursor() as cursor:
                cursor.execute(self.TABLE_EXISTS_QUERY, (schema, table))
                if cursor.fetchone() is None:
                    return None

                cursor.execute(self.PRIMARY_KEY_QUERY, (schema, table))
                rows = cursor.fetchall()
        except pymysql.MySQLError as e:
            raise CacheLookupError(f"Primary key query for {schema}.{table} failed: {e}")

        return [
            KeyColumn(
                column_name=name,
                column_index=int(position),
                column_type=SQL_TYPE_CODES.get(str(data_type).lower(), OTHER_TYPE_CODE),
                column_type_name=column_type,
            )
            for name, position, data_type, column_type in rows
        ]

    def close(self) -> None:
        if self.conn is not None:
            try:
                self.conn.close()
            except pymysql.MySQLError as e:
                logger.debug(f"Error closing catalog connection: {e}")
            finally:
                self.conn = None
