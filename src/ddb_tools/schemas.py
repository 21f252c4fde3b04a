# In src/ddb_tools/schemas.py

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal, TypedDict

from pydantic import BaseModel, ConfigDict, Field

# --- Static Type Hinting (for mypy and IDEs) ---

# A DynamoDB attribute value in wire format, e.g. {"S": "abc"} or {"N": "42"}.
AttributeValue = dict[str, Any]

# An attribute-name -> attribute-value map, as found in Items, Key and
# LastEvaluatedKey.
AttributeMap = dict[str, AttributeValue]


class KeySchemaElementDict(TypedDict):
    """One entry of ``Table.KeySchema`` in a DescribeTable response."""

    AttributeName: str
    KeyType: Literal["HASH", "RANGE"]


class DeleteRequestDict(TypedDict):
    Key: AttributeMap


class WriteRequestDict(TypedDict):
    DeleteRequest: DeleteRequestDict


# --- Runtime Validation (using Pydantic) ---


class KeySchema(BaseModel):
    """
    The attributes that identify a record: a partition key and, for composite
    tables, a sort key. Resolved once per purge and never mutated.
    """

    model_config = ConfigDict(frozen=True)

    partition_key: str = Field(..., min_length=1)
    sort_key: str | None = Field(None, min_length=1)

    @property
    def is_composite(self) -> bool:
        return self.sort_key is not None

    @property
    def attribute_names(self) -> tuple[str, ...]:
        if self.sort_key is None:
            return (self.partition_key,)
        return (self.partition_key, self.sort_key)


# --- Purge Engine Values ---


@dataclass(frozen=True, slots=True)
class KeyTuple:
    """
    The minimal identity of one record. Values are the Python scalars
    produced by boto3's TypeDeserializer (str, Decimal or Binary).
    """

    partition: Any
    sort: Any = None


Batch = list[KeyTuple]


@dataclass(frozen=True, slots=True)
class ScanPage:
    """One page of a Scan response."""

    items: list[AttributeMap]
    count: int
    cursor: AttributeMap | None = None


@dataclass(frozen=True, slots=True)
class ScanResult:
    keys: list[KeyTuple]
    count: int
    pages: int


@dataclass(frozen=True, slots=True)
class BatchOutcome:
    """What happened to a single delete batch."""

    index: int
    size: int
    sent: int = 0
    skipped: int = 0
    unprocessed: int = 0
    error: str | None = None

    @property
    def failed_items(self) -> int:
        if self.error is not None:
            return self.size
        return self.skipped + self.unprocessed

    @property
    def succeeded(self) -> bool:
        return self.failed_items == 0


@dataclass(frozen=True, slots=True)
class DeleteSummary:
    outcomes: tuple[BatchOutcome, ...] = ()

    @property
    def batches_total(self) -> int:
        return len(self.outcomes)

    @property
    def batches_succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.succeeded)

    @property
    def batches_failed(self) -> int:
        return self.batches_total - self.batches_succeeded

    @property
    def items_failed(self) -> int:
        return sum(o.failed_items for o in self.outcomes)


@dataclass(frozen=True, slots=True)
class PurgeResult:
    """
    Outcome of a purge. ``item_count`` is the number of items observed by the
    scan, not the number confirmed deleted; see ``confirmed_count``.
    """

    table_name: str
    item_count: int
    delete_summary: DeleteSummary = field(default_factory=DeleteSummary)

    @property
    def confirmed_count(self) -> int:
        return max(self.item_count - self.delete_summary.items_failed, 0)

    @property
    def fully_deleted(self) -> bool:
        return self.delete_summary.items_failed == 0


class PurgeState(str, Enum):
    IDLE = "idle"
    RESOLVING_SCHEMA = "resolving_schema"
    SCANNING = "scanning"
    DELETING = "deleting"
    DONE = "done"
    FAILED = "failed"
