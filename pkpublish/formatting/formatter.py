from typing import TYPE_CHECKING, Any, Dict, List
import json
from pkpublish.events.transaction import ChangeType, RowChange, Transaction
from pkpublish.keys.cache import TableKeyCache, TableKeyInfo
from pkpublish.metrics.recorder import MetricsRecorder, FORMATTING_ERROR
from pkpublish.utils.logger import logger
from pkpublish.utils.serializer import Serializer

if TYPE_CHECKING:
    from pkpublish.rules.accumulator import MatchAccumulator


class MessageFormatter:
    """
    Renders row-level and transaction-level messages as JSON text.

    Formatting never raises. A document that cannot be serialized is replaced
    by a small hand-built fallback and the formatting error is counted.
    """

    def __init__(self, key_cache: TableKeyCache, metrics: MetricsRecorder):
        self.key_cache = key_cache
        self.metrics = metrics
        self._serializer = Serializer()

    def messages_for_row_change(
        self, row_change: RowChange, transaction: Transaction
    ) -> List[str]:
        """
        Look up the row-change's table key and format one message per row.

        Returns:
            List[str]: Row messages, empty when the table has no usable key.
        """
        lookup = self.key_cache.lookup(
            row_change.schema, row_change.table, refresh=row_change.is_stale
        )
        if not lookup.found:
            logger.debug(
                f"No primary key for {row_change.schema}.{row_change.table} "
                f"({lookup.status.value}), skipping row message"
            )
            return []

        return self.format_row(row_change, lookup.key_info, transaction)

    def format_row(
        self, row_change: RowChange, key_info: TableKeyInfo, transaction: Transaction
    ) -> List[str]:
        """
        Format the primary key of every row in a row-change.

        Key values are located by the key column's ordinal position, which
        need not match its position in the delivered value list. Deletes read
        from the key values, everything else from the column values.

        Args:
            row_change: The row-change to describe.
            key_info: Primary key columns of its table.
            transaction: The enclosing transaction.

        Returns:
            List[str]: One JSON document per row.
        """
        if row_change.change_type is ChangeType.DELETE:
            specs, rows = row_change.key_specs, row_change.key_values
        else:
            specs, rows = row_change.column_specs, row_change.column_values

        positions = {spec.index: offset for offset, spec in enumerate(specs)}

        messages = []
        for row in rows:
            header = {
                "sourceID": transaction.source_id,
                "shardID": transaction.shard_id,
                "schema": row_change.schema,
                "table": row_change.table,
                "changeType": row_change.change_type.value,
                "eventID": transaction.event_id,
                "eventTimestamp": transaction.extracted_timestamp,
            }

            primary_key = []
            for column in key_info.columns:
                offset = positions.get(column.column_index)
                if offset is None or offset >= len(row):
                    primary_key = None
                    break
                primary_key.append(
                    {
                        "columnName": column.column_name,
                        "columnType": column.column_type,
                        "columnTypeName": column.column_type_name,
                        "value": _json_value(row[offset]),
                    }
                )

            if primary_key is None:
                self.metrics.increment(FORMATTING_ERROR)
                logger.warning(
                    f"Key column {column.column_name} of "
                    f"{row_change.schema}.{row_change.table} missing from row data"
                )
                messages.append(
                    json.dumps(
                        {
                            "ERROR": f"Key column {column.column_name} (position "
                            f"{column.column_index}) not found in "
                            f"{row_change.schema}.{row_change.table} row data",
                        }
                    )
                )
                continue

            header["primaryKey"] = primary_key
            messages.append(
                self._serializer.to_json(header, lambda: self._row_fallback(header))
            )

        return messages

    def format_transaction(self, accumulator: "MatchAccumulator") -> str:
        """
        Format the transaction-level message for a matched transaction filter.

        The message holds either the filter's fixed message, or the row
        messages of every matched pair whose row filter is included.

        Args:
            accumulator: Match results of the filter.

        Returns:
            str: The JSON document.
        """
        transaction_filter = accumulator.transaction_filter
        transaction = accumulator.transaction

        document: Dict[str, Any] = {
            "name": transaction_filter.name,
            "eventId": transaction.event_id,
            "eventTimestamp": transaction.extracted_timestamp,
            "message": "",
            "rows": [],
        }

        if transaction_filter.fixed_message is not None:
            document["message"] = transaction_filter.fixed_message
        else:
            for row_change, row_filter in accumulator.matched_pairs:
                if row_filter.include:
                    document["rows"].extend(
                        row_filter.messages_for_match(row_change, transaction, self)
                    )

        return self._serializer.to_json(
            document, lambda: self._transaction_fallback(document)
        )

    def _row_fallback(self, document: Dict[str, Any]) -> str:
        self.metrics.increment(FORMATTING_ERROR)
        return json.dumps(
            {
                "RowFallback": True,
                "schema": str(document["schema"]),
                "table": str(document["table"]),
                "changeType": document["changeType"],
                "eventID": str(document["eventID"]),
                "eventTimestamp": document["eventTimestamp"],
            }
        )

    def _transaction_fallback(self, document: Dict[str, Any]) -> str:
        self.metrics.increment(FORMATTING_ERROR)
        return json.dumps(
            {
                "FallbackTransactionMessage": True,
                "name": str(document["name"]),
                "eventId": str(document["eventId"]),
                "eventTimestamp": document["eventTimestamp"],
                "rowCount": len(document["rows"]),
                "message": str(document["message"]),
            }
        )


def _json_value(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    return value
