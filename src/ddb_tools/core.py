# src/ddb_tools/core.py

"""
Core logic for emptying a DynamoDB table in place.

A purge runs in four phases: resolve the key schema, scan every item's key
attributes page by page, cut the keys into BatchWriteItem-sized batches, and
delete the batches from a bounded thread pool. Schema and scan failures abort
the purge. Failures while deleting are isolated to their batch, logged, and
reported in the returned `PurgeResult`; they never abort sibling batches.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Iterable, Sequence

from boto3.dynamodb.types import TypeDeserializer, TypeSerializer

from .clients import TableProvider
from .config import BATCH_WRITE_ITEM_LIMIT
from .exceptions import (
    DeleteError,
    MarshalError,
    MissingParameterError,
    ScanError,
    SchemaLookupError,
    get_error_context,
)
from .schemas import (
    AttributeMap,
    Batch,
    BatchOutcome,
    DeleteSummary,
    KeySchema,
    KeyTuple,
    PurgeResult,
    PurgeState,
    ScanResult,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 16

_deserializer = TypeDeserializer()
_serializer = TypeSerializer()


# --- Schema Resolution ---
def resolve_key_schema(provider: TableProvider, table_name: str) -> KeySchema:
    """Reads the partition key and optional sort key names of *table_name*."""
    elements = provider.describe_key_schema(table_name)

    partition_key: str | None = None
    sort_key: str | None = None
    for element in elements:
        if element["KeyType"] == "HASH":
            partition_key = element["AttributeName"]
        elif element["KeyType"] == "RANGE":
            sort_key = element["AttributeName"]

    if not partition_key:
        raise SchemaLookupError(table_name, "table description has no HASH key")

    schema = KeySchema(partition_key=partition_key, sort_key=sort_key)
    logger.debug(
        "Resolved key schema",
        extra={"table_name": table_name, "partition_key": partition_key, "sort_key": sort_key},
    )
    return schema


# --- Scanning ---
def _projection(schema: KeySchema) -> tuple[str, dict[str, str]]:
    """Builds a ProjectionExpression limited to the key attributes."""
    names = dict(zip(("#pk", "#sk"), schema.attribute_names))
    return ", ".join(names), names


def _extract_key(item: AttributeMap, schema: KeySchema) -> KeyTuple:
    return KeyTuple(*(_deserializer.deserialize(item[name]) for name in schema.attribute_names))


def scan_keys(provider: TableProvider, table_name: str, schema: KeySchema) -> ScanResult:
    """
    Collects the key of every item in the table with a sequential, paginated
    scan. Keys keep the order the pages were returned in.

    Raises ScanError on the first failed page; no partial result is returned.
    """
    projection_expression, attribute_names = _projection(schema)
    keys: list[KeyTuple] = []
    count = 0
    pages = 0
    cursor: AttributeMap | None = None

    while True:
        page = provider.scan(
            table_name,
            projection_expression,
            attribute_names,
            exclusive_start_key=cursor,
        )
        pages += 1
        count += page.count

        for item in page.items:
            try:
                keys.append(_extract_key(item, schema))
            except KeyError as e:
                raise ScanError(
                    table_name,
                    f"item is missing key attribute {e.args[0]!r}",
                    context={"page": pages},
                ) from e
            except (TypeError, ValueError) as e:
                raise ScanError(
                    table_name,
                    f"undecodable key attribute: {e}",
                    context={"page": pages},
                ) from e

        logger.debug(
            "Scanned page",
            extra={"table_name": table_name, "page": pages, "page_count": page.count},
        )

        cursor = page.cursor
        if not cursor:
            break

    logger.info(
        "Finished scanning table",
        extra={"table_name": table_name, "item_count": count, "pages": pages},
    )
    return ScanResult(keys=keys, count=count, pages=pages)


# --- Chunking ---
def chunk_keys(keys: Sequence[KeyTuple], max_size: int = BATCH_WRITE_ITEM_LIMIT) -> list[Batch]:
    """Splits *keys* into contiguous batches of *max_size*; the last holds the remainder."""
    if max_size <= 0:
        raise ValueError(f"max_size must be a positive integer, not {max_size}")
    return [list(keys[i : i + max_size]) for i in range(0, len(keys), max_size)]


# --- Deleting ---
def marshal_key(key: KeyTuple, schema: KeySchema) -> AttributeMap:
    """Converts a KeyTuple to a DynamoDB key map in wire format."""
    if key.partition is None:
        raise MarshalError(f"partition key '{schema.partition_key}' has no value")
    if schema.is_composite and key.sort is None:
        raise MarshalError(f"sort key '{schema.sort_key}' has no value")

    try:
        key_map = {schema.partition_key: _serializer.serialize(key.partition)}
        if schema.sort_key is not None:
            key_map[schema.sort_key] = _serializer.serialize(key.sort)
    except (TypeError, ValueError, ArithmeticError) as e:
        raise MarshalError(str(e)) from e
    return key_map


def _delete_batch(
    provider: TableProvider,
    table_name: str,
    schema: KeySchema,
    index: int,
    batch: Batch,
) -> BatchOutcome:
    """
    Deletes one batch with a single BatchWriteItem call. Never raises: every
    failure is logged and folded into the returned outcome.
    """
    key_maps: list[AttributeMap] = []
    skipped = 0
    for key in batch:
        try:
            key_maps.append(marshal_key(key, schema))
        except MarshalError as e:
            skipped += 1
            logger.warning(
                f"Skipping record that could not be marshalled: {e}",
                extra={"table_name": table_name, "batch": index, "key": repr(key)},
            )

    if not key_maps:
        return BatchOutcome(index=index, size=len(batch), skipped=skipped)

    try:
        unprocessed = provider.batch_delete(table_name, key_maps)
    except DeleteError as e:
        logger.error(
            f"Batch delete failed: {e}",
            extra={
                "table_name": table_name,
                "batch": index,
                "batch_size": len(batch),
                "error": get_error_context(e),
            },
        )
        return BatchOutcome(
            index=index, size=len(batch), skipped=skipped, error=e.message
        )
    except Exception as e:
        logger.exception(
            "Unexpected error deleting batch.",
            extra={"table_name": table_name, "batch": index, "error": get_error_context(e)},
        )
        return BatchOutcome(index=index, size=len(batch), skipped=skipped, error=str(e))

    if unprocessed:
        logger.warning(
            "DynamoDB left items unprocessed. They were not retried.",
            extra={"table_name": table_name, "batch": index, "unprocessed": len(unprocessed)},
        )
    return BatchOutcome(
        index=index,
        size=len(batch),
        sent=len(key_maps),
        skipped=skipped,
        unprocessed=len(unprocessed),
    )


def delete_batches(
    provider: TableProvider,
    table_name: str,
    schema: KeySchema,
    batches: Iterable[Batch],
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    on_batch_done: Callable[[BatchOutcome], None] | None = None,
) -> DeleteSummary:
    """
    Deletes every batch concurrently, at most *max_concurrency* requests in
    flight, and returns once all of them have finished.
    """
    if max_concurrency <= 0:
        raise ValueError(f"max_concurrency must be a positive integer, not {max_concurrency}")

    batches = list(batches)
    if not batches:
        return DeleteSummary()

    workers = min(max_concurrency, len(batches))
    logger.info(
        "Deleting batches",
        extra={"table_name": table_name, "batches": len(batches), "workers": workers},
    )

    outcomes: list[BatchOutcome] = []
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="ddb-delete") as executor:
        futures = [
            executor.submit(_delete_batch, provider, table_name, schema, index, batch)
            for index, batch in enumerate(batches)
        ]
        for future in as_completed(futures):
            outcome = future.result()
            outcomes.append(outcome)
            if on_batch_done is not None:
                try:
                    on_batch_done(outcome)
                except Exception:
                    logger.exception(
                        "Batch callback failed.",
                        extra={"table_name": table_name, "batch": outcome.index},
                    )

    outcomes.sort(key=lambda o: o.index)
    summary = DeleteSummary(outcomes=tuple(outcomes))
    if summary.batches_failed:
        logger.warning(
            "Some batches were not fully deleted",
            extra={
                "table_name": table_name,
                "batches_failed": summary.batches_failed,
                "items_failed": summary.items_failed,
            },
        )
    return summary


# --- High-Level Orchestrator ---
class TablePurger:
    """
    Empties a table: resolve schema, scan, chunk, delete.

    The ``state`` attribute follows IDLE -> RESOLVING_SCHEMA -> SCANNING ->
    DELETING -> DONE. FAILED is only reachable from RESOLVING_SCHEMA and
    SCANNING; the delete phase always ends in DONE.
    """

    def __init__(
        self,
        provider: TableProvider,
        max_batch_size: int = BATCH_WRITE_ITEM_LIMIT,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        on_batch_done: Callable[[BatchOutcome], None] | None = None,
    ):
        if not 1 <= max_batch_size <= BATCH_WRITE_ITEM_LIMIT:
            raise ValueError(
                f"max_batch_size must be between 1 and {BATCH_WRITE_ITEM_LIMIT}"
            )
        self._provider = provider
        self._max_batch_size = max_batch_size
        self._max_concurrency = max_concurrency
        self._on_batch_done = on_batch_done
        self.state = PurgeState.IDLE
        self.schema: KeySchema | None = None
        self.batch_count = 0

    def purge(self, table_name: str | None) -> PurgeResult:
        """
        Deletes every item of *table_name* and returns the number of items the
        scan observed, together with the per-batch delete outcomes.

        Raises MissingParameterError before any DynamoDB call when no table
        name is given, and SchemaLookupError / ScanError when the purge cannot
        start; in those cases nothing has been deleted.
        """
        if not table_name:
            raise MissingParameterError("table-name")

        self.state = PurgeState.RESOLVING_SCHEMA
        try:
            self.schema = resolve_key_schema(self._provider, table_name)
        except Exception:
            self.state = PurgeState.FAILED
            raise

        self.state = PurgeState.SCANNING
        try:
            scan = scan_keys(self._provider, table_name, self.schema)
        except Exception:
            self.state = PurgeState.FAILED
            raise

        self.state = PurgeState.DELETING
        batches = chunk_keys(scan.keys, self._max_batch_size)
        self.batch_count = len(batches)
        summary = delete_batches(
            self._provider,
            table_name,
            self.schema,
            batches,
            max_concurrency=self._max_concurrency,
            on_batch_done=self._on_batch_done,
        )
        self.state = PurgeState.DONE

        logger.info(
            "Purge finished",
            extra={
                "table_name": table_name,
                "item_count": scan.count,
                "batches": summary.batches_total,
                "batches_failed": summary.batches_failed,
            },
        )
        return PurgeResult(table_name=table_name, item_count=scan.count, delete_summary=summary)


def purge_table(
    provider: TableProvider,
    table_name: str | None,
    max_batch_size: int = BATCH_WRITE_ITEM_LIMIT,
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
) -> PurgeResult:
    """Convenience wrapper around ``TablePurger(...).purge(table_name)``."""
    purger = TablePurger(
        provider, max_batch_size=max_batch_size, max_concurrency=max_concurrency
    )
    return purger.purge(table_name)
