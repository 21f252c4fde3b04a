"""
ddb-tools: empty a DynamoDB table in place.

The purge engine lives in :mod:`ddb_tools.core`; :mod:`ddb_tools.cli` wraps it
as the ``ddbtools`` command.
"""

from .core import TablePurger, chunk_keys, delete_batches, purge_table, resolve_key_schema, scan_keys
from .schemas import KeySchema, KeyTuple, PurgeResult

__all__ = [
    "KeySchema",
    "KeyTuple",
    "PurgeResult",
    "TablePurger",
    "chunk_keys",
    "delete_batches",
    "purge_table",
    "resolve_key_schema",
    "scan_keys",
]
