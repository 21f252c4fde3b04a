"""
Shared fixtures for unit tests.
"""

from __future__ import annotations

import threading
import time
from typing import Any, Callable

import pytest

from ddb_tools.config import get_config
from ddb_tools.exceptions import SchemaLookupError
from ddb_tools.schemas import ScanPage


@pytest.fixture(autouse=True)
def _env_vars(monkeypatch):
    """
    Ensures a deterministic environment for every test run and a fresh
    configuration object for every test.
    """
    for name in (
        "SERVICE_NAME",
        "LOG_LEVEL",
        "DDB_MAX_BATCH_SIZE",
        "DDB_MAX_CONCURRENCY",
        "DDB_CONNECT_TIMEOUT_SECONDS",
        "DDB_READ_TIMEOUT_SECONDS",
        "DDB_MAX_ATTEMPTS",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("AWS_REGION", "eu-west-2")
    monkeypatch.setenv("POWERTOOLS_SERVICE_NAME", "ddbtools-test")
    get_config.cache_clear()
    yield
    get_config.cache_clear()


class FakeTableProvider:
    """
    In-memory stand-in for DynamoDBClient.

    Serves *items* (wire format) in pages of *page_size* and records every call.
    ``on_delete`` may be set to a callable receiving the key maps of a batch;
    it can sleep, raise, or return the keys to report as unprocessed.
    """

    def __init__(
        self,
        key_schema: list[dict[str, str]],
        items: list[dict[str, Any]],
        page_size: int = 10,
    ):
        self.key_schema = key_schema
        self.items = items
        self.page_size = page_size
        self.on_delete: Callable[[list[dict[str, Any]]], list | None] | None = None
        self.scan_error: Exception | None = None
        self.scan_error_on_page: int | None = None
        self.calls: list[tuple[str, Any]] = []
        self.deleted_batches: list[list[dict[str, Any]]] = []
        self._lock = threading.Lock()

    def describe_key_schema(self, table_name):
        self.calls.append(("describe_key_schema", table_name))
        if not self.key_schema:
            raise SchemaLookupError(table_name, "Requested resource not found")
        return self.key_schema

    def scan(self, table_name, projection_expression, expression_attribute_names, exclusive_start_key=None):
        self.calls.append(
            ("scan", (projection_expression, expression_attribute_names, exclusive_start_key))
        )
        offset = int(exclusive_start_key["offset"]["N"]) if exclusive_start_key else 0
        page_number = offset // self.page_size + 1
        if self.scan_error is not None and page_number == self.scan_error_on_page:
            raise self.scan_error

        page = self.items[offset : offset + self.page_size]
        next_offset = offset + len(page)
        cursor = {"offset": {"N": str(next_offset)}} if next_offset < len(self.items) else None
        return ScanPage(items=page, count=len(page), cursor=cursor)

    def batch_delete(self, table_name, keys):
        with self._lock:
            self.calls.append(("batch_delete", len(keys)))
        unprocessed = self.on_delete(keys) if self.on_delete else None
        with self._lock:
            self.deleted_batches.append(list(keys))
        return unprocessed or []

    @property
    def scan_calls(self):
        return [args for name, args in self.calls if name == "scan"]

    @property
    def deleted_keys(self):
        return [key for batch in self.deleted_batches for key in batch]


@pytest.fixture
def simple_items() -> list[dict]:
    """60 items of a table keyed by ``id`` only."""
    return [{"id": {"S": f"item-{i:03d}"}, "payload": {"S": "x"}} for i in range(60)]


@pytest.fixture
def simple_provider(simple_items) -> FakeTableProvider:
    return FakeTableProvider(
        key_schema=[{"AttributeName": "id", "KeyType": "HASH"}],
        items=simple_items,
        page_size=17,
    )


@pytest.fixture
def composite_items() -> list[dict]:
    """30 items of a table keyed by ``tenant`` + numeric ``ts``."""
    return [
        {"tenant": {"S": f"tenant-{i % 3}"}, "ts": {"N": str(1_700_000_000 + i)}}
        for i in range(30)
    ]


@pytest.fixture
def composite_provider(composite_items) -> FakeTableProvider:
    return FakeTableProvider(
        key_schema=[
            {"AttributeName": "tenant", "KeyType": "HASH"},
            {"AttributeName": "ts", "KeyType": "RANGE"},
        ],
        items=composite_items,
        page_size=8,
    )


@pytest.fixture
def make_provider():
    """Factory for FakeTableProvider instances with custom contents."""
    return FakeTableProvider


@pytest.fixture
def slow_delete():
    """Builds an ``on_delete`` hook that sleeps per batch and records completions."""

    def _build(delay_for: Callable[[list[dict]], float], finished: list):
        lock = threading.Lock()

        def _hook(keys):
            time.sleep(delay_for(keys))
            with lock:
                finished.append(keys[0])
            return None

        return _hook

    return _build
