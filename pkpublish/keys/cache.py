from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Optional, Tuple
import time
from pkpublish.events.transaction import SchemaChange
from pkpublish.keys import ddl
from pkpublish.keys.catalog import CatalogSource, KeyColumn
from pkpublish.metrics.recorder import (
    MetricsRecorder,
    DB_CONNECT_ERROR,
    DB_LOOKUP_ERROR,
    DB_LOOKUP_NO_PRIMARY_KEY,
    DDL_PARSE_ERROR,
)
from pkpublish.utils.exceptions import CacheLookupError
from pkpublish.utils.logger import logger


@dataclass(frozen=True)
class TableKeyInfo:
    """Ordered primary key columns of one table."""

    schema: str
    table: str
    columns: Tuple[KeyColumn, ...] = field(default_factory=tuple)


class KeyLookupStatus(Enum):
    FOUND = "FOUND"
    NO_PRIMARY_KEY = "NO_PRIMARY_KEY"
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class KeyLookup:
    """
    Result of a primary key lookup.

    FOUND carries key_info. NO_PRIMARY_KEY means the table exists without a
    key. UNKNOWN means the answer could not be determined this time.
    """

    status: KeyLookupStatus
    key_info: Optional[TableKeyInfo] = None

    @property
    def found(self) -> bool:
        return self.status is KeyLookupStatus.FOUND


NO_PRIMARY_KEY = KeyLookup(KeyLookupStatus.NO_PRIMARY_KEY)
UNKNOWN = KeyLookup(KeyLookupStatus.UNKNOWN)


class TableKeyCache:
    """
    Caches primary key metadata per table, keyed by upper-cased names.

    Entries are filled on first lookup and evicted when a DDL statement
    touches their table or schema. Only definite answers (a key, or no key)
    are cached. The catalog connection is recycled once it is older than
    reconnect_interval seconds.
    """

    def __init__(
        self,
        catalog: CatalogSource,
        metrics: MetricsRecorder,
        reconnect_interval: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.catalog = catalog
        self.metrics = metrics
        self.reconnect_interval = reconnect_interval
        self._clock = clock
        self._entries: Dict[str, Dict[str, KeyLookup]] = {}
        self._last_connect: Optional[float] = None

    def lookup(self, schema: str, table: str, refresh: bool = False) -> KeyLookup:
        """
        Return the primary key of a table, querying the catalog on a miss.

        Args:
            schema: Schema name, any case.
            table: Table name, any case.
            refresh: Ignore any cached entry and query again.

        Returns:
            KeyLookup: FOUND, NO_PRIMARY_KEY or UNKNOWN.
        """
        schema_key, table_key = schema.upper(), table.upper()
        if not refresh:
            cached = self._entries.get(schema_key, {}).get(table_key)
            if cached is not None:
                return cached

        self._reconnect_if_needed()

        try:
            columns = self.catalog.primary_key(schema, table)
        except CacheLookupError as e:
            self.metrics.increment(DB_LOOKUP_ERROR)
            logger.warning(f"Primary key lookup for {schema}.{table} failed: {e}")
            return UNKNOWN

        if columns is None:
            self.metrics.increment(DB_LOOKUP_ERROR)
            logger.warning(f"Table {schema}.{table} not found in catalog")
            return UNKNOWN

        if not columns:
            self.metrics.increment(DB_LOOKUP_NO_PRIMARY_KEY)
            logger.info(f"Table {schema}.{table} has no primary key")
            result = NO_PRIMARY_KEY
        else:
            result = KeyLookup(
                KeyLookupStatus.FOUND, TableKeyInfo(schema, table, tuple(columns))
            )

        self._entries.setdefault(schema_key, {})[table_key] = result
        return result

    def is_cached(self, schema: str, table: str) -> bool:
        return table.upper() in self._entries.get(schema.upper(), {})

    def invalidate(self, schema_change: SchemaChange) -> None:
        """
        Evict the entries a DDL statement may have made stale.

        DROP SCHEMA evicts the whole schema. DROP, ALTER and RENAME TABLE
        evict the named tables, qualified by the statement's default schema
        when they carry none. Statements that cannot be classified, or table
        DDL whose schema cannot be told, clear everything.
        """
        query = (schema_change.query or "").strip()
        if not query:
            return

        try:
            operation = ddl.classify(query)
        except Exception as e:
            logger.warning(f"Error classifying statement {query!r}: {e}")
            operation = None

        if operation is None:
            self._clear_after_parse_error(query)
            return

        if operation.object_type == ddl.SCHEMA and operation.operation == ddl.DROP:
            for target in operation.targets:
                logger.debug(f"Evicting schema {target.schema} after {query!r}")
                self._entries.pop(target.schema.upper(), None)
            return

        if operation.object_type != ddl.TABLE or operation.operation not in (
            ddl.DROP,
            ddl.ALTER,
            ddl.RENAME,
        ):
            return

        for target in operation.targets:
            schema = target.schema or schema_change.default_schema
            if not schema:
                self._clear_after_parse_error(query)
                return
            logger.debug(f"Evicting table {schema}.{target.name} after {query!r}")
            self._entries.get(schema.upper(), {}).pop(target.name.upper(), None)

    def clear(self) -> None:
        self._entries.clear()

    def release(self) -> None:
        """Close the catalog connection and drop every entry."""
        self.clear()
        self.catalog.close()
        self._last_connect = None

    def _clear_after_parse_error(self, query: str) -> None:
        self.metrics.increment(DDL_PARSE_ERROR)
        logger.warning(f"Unable to classify DDL {query!r}, clearing key cache")
        self.clear()

    def _reconnect_if_needed(self) -> None:
        now = self._clock()
        if (
            self._last_connect is not None
            and now - self._last_connect <= self.reconnect_interval
        ):
            return

        try:
            self.catalog.connect()
        except CacheLookupError as e:
            self.metrics.increment(DB_CONNECT_ERROR)
            logger.warning(f"Catalog reconnect failed: {e}")
            return

        self._last_connect = now
