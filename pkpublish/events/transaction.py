from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Union


class ChangeType(Enum):
    """Kind of row-level modification carried by a RowChange."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass(frozen=True)
class ColumnSpec:
    """
    Description of one column carried in a row-change.

    Attributes:
        name: Column name.
        index: The column's 1-based ordinal position in its table.
    """

    name: str
    index: int


# Marks a row-change whose table metadata is known to be out of date.
STALE_TABLE_ID = -1


@dataclass
class RowChange:
    """
    One insert, update or delete against one table.

    A single RowChange may carry several rows. Each entry of column_values is
    one row aligned with column_specs, and each entry of key_values is one row
    aligned with key_specs. For updates the key values hold the before image.
    """

    schema: str
    table: str
    change_type: ChangeType
    column_specs: List[ColumnSpec] = field(default_factory=list)
    column_values: List[List[Any]] = field(default_factory=list)
    key_specs: List[ColumnSpec] = field(default_factory=list)
    key_values: List[List[Any]] = field(default_factory=list)
    table_id: Optional[int] = None

    @property
    def is_stale(self) -> bool:
        return self.table_id == STALE_TABLE_ID


@dataclass
class SchemaChange:
    """A DDL statement observed in the change stream."""

    query: str
    default_schema: Optional[str] = None


@dataclass
class Transaction:
    """
    A committed batch of changes delivered by the data source.

    Attributes:
        event_id: Identifier of the transaction in the source log.
        extracted_timestamp: Time the change was extracted, in milliseconds
            since the epoch. It also drives rule reloads and status reports.
        source_id: Identifier of the originating server.
        shard_id: Identifier of the shard the change came from.
        data: Row-changes and schema-changes in commit order.
    """

    event_id: str
    extracted_timestamp: int
    source_id: str = ""
    shard_id: str = ""
    data: List[Union[RowChange, SchemaChange]] = field(default_factory=list)

    @property
    def row_changes(self) -> List[RowChange]:
        return [item for item in self.data if isinstance(item, RowChange)]

    @property
    def schema_changes(self) -> List[SchemaChange]:
        return [item for item in self.data if isinstance(item, SchemaChange)]
