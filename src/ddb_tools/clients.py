# src/ddb_tools/clients.py

"""
Client wrapper for the DynamoDB operations the purge engine needs.

`DynamoDBClient` provides a small, typed interface over a raw boto3 client and
translates botocore failures into the project's exception types. The purge
engine only depends on the `TableProvider` protocol, so tests can hand it an
in-memory fake instead.
"""

import logging
from typing import TYPE_CHECKING, Any, Protocol, cast

import boto3
from botocore.client import Config as BotocoreConfig
from botocore.exceptions import ClientError, HTTPClientError
from botocore.exceptions import ConnectionError as BotocoreConnectionError

from .config import AppConfig
from .exceptions import (
    DdbToolsError,
    DeleteError,
    ProviderTimeoutError,
    ScanError,
    SchemaLookupError,
    TableAccessDeniedError,
    TableNotFoundError,
    ThrottlingError,
)
from .schemas import AttributeMap, KeySchemaElementDict, ScanPage, WriteRequestDict

if TYPE_CHECKING:
    from mypy_boto3_dynamodb.client import DynamoDBClient as DynamoDBClientType

logger = logging.getLogger(__name__)

THROTTLING_ERROR_CODES = [
    "ProvisionedThroughputExceededException",
    "RequestLimitExceeded",
    "ThrottlingException",
    "Throttling",
]

# NoCredentialsError and NoRegionError pass through to the command line.
_PROVIDER_ERRORS = (ClientError, BotocoreConnectionError, HTTPClientError)


class TableProvider(Protocol):
    """The three DynamoDB operations used by the purge engine."""

    def describe_key_schema(self, table_name: str) -> list[KeySchemaElementDict]: ...

    def scan(
        self,
        table_name: str,
        projection_expression: str,
        expression_attribute_names: dict[str, str],
        exclusive_start_key: AttributeMap | None = None,
    ) -> ScanPage: ...

    def batch_delete(
        self, table_name: str, keys: list[AttributeMap]
    ) -> list[AttributeMap]: ...


def _translate_error(error: Exception, operation: str, table_name: str) -> DdbToolsError:
    """Maps a botocore failure to the matching project exception."""
    if isinstance(error, ClientError):
        error_code = error.response.get("Error", {}).get("Code", "")
        error_message = error.response.get("Error", {}).get("Message", str(error))
        context = {
            "operation": operation,
            "aws_error_code": error_code,
            "aws_error_message": error_message,
        }

        if error_code == "ResourceNotFoundException":
            translated: DdbToolsError = TableNotFoundError(table_name, context=context)
        elif error_code in ["AccessDeniedException", "UnrecognizedClientException"]:
            translated = TableAccessDeniedError(table_name, context=context)
        elif error_code in THROTTLING_ERROR_CODES:
            translated = ThrottlingError(operation, table_name, context=context)
        elif error_code in ["RequestTimeout", "RequestTimeoutException"]:
            translated = ProviderTimeoutError(operation, table_name, context=context)
        else:
            translated = DdbToolsError(
                f"DynamoDB {operation} failed: {error_message}",
                error_code="DDB_CLIENT_ERROR",
                context={"table_name": table_name, **context},
            )
    else:
        # Transport faults (connect/read timeouts, dropped connections)
        translated = ProviderTimeoutError(
            operation,
            table_name,
            context={"connection_error": str(error)},
        )

    translated.__cause__ = error
    return translated


class DynamoDBClient:
    """
    A wrapper for the DynamoDB client operations used to empty a table.
    """

    def __init__(self, dynamodb_client: "DynamoDBClientType"):
        """
        Initializes the DynamoDBClient.

        Args:
            dynamodb_client: A typed, low-level boto3 DynamoDB client. boto3
                clients are thread safe, so one instance is shared by every
                delete worker.
        """
        self._client = dynamodb_client

    def describe_key_schema(self, table_name: str) -> list[KeySchemaElementDict]:
        """Returns ``Table.KeySchema`` from DescribeTable."""
        try:
            response = self._client.describe_table(TableName=table_name)
        except _PROVIDER_ERRORS as e:
            cause = _translate_error(e, "DescribeTable", table_name)
            raise SchemaLookupError(
                table_name, cause.message, context=cause.context
            ) from cause

        return cast(list[KeySchemaElementDict], response["Table"]["KeySchema"])

    def scan(
        self,
        table_name: str,
        projection_expression: str,
        expression_attribute_names: dict[str, str],
        exclusive_start_key: AttributeMap | None = None,
    ) -> ScanPage:
        """Fetches a single scan page, starting after *exclusive_start_key* when given."""
        params: dict[str, Any] = {
            "TableName": table_name,
            "ProjectionExpression": projection_expression,
            "ExpressionAttributeNames": expression_attribute_names,
        }
        if exclusive_start_key:
            params["ExclusiveStartKey"] = exclusive_start_key

        try:
            response = self._client.scan(**params)
        except _PROVIDER_ERRORS as e:
            cause = _translate_error(e, "Scan", table_name)
            raise ScanError(table_name, cause.message, context=cause.context) from cause

        items = cast(list[AttributeMap], response.get("Items", []))
        return ScanPage(
            items=items,
            count=response.get("Count", len(items)),
            cursor=cast(AttributeMap | None, response.get("LastEvaluatedKey") or None),
        )

    def batch_delete(self, table_name: str, keys: list[AttributeMap]) -> list[AttributeMap]:
        """
        Issues a single BatchWriteItem call deleting *keys*.

        Returns the keys DynamoDB reported back in ``UnprocessedItems``. They are
        not retried here.
        """
        write_requests: list[WriteRequestDict] = [
            {"DeleteRequest": {"Key": key}} for key in keys
        ]
        try:
            response = self._client.batch_write_item(
                RequestItems={table_name: write_requests}  # type: ignore[dict-item]
            )
        except _PROVIDER_ERRORS as e:
            cause = _translate_error(e, "BatchWriteItem", table_name)
            raise DeleteError(table_name, cause.message, context=cause.context) from cause

        unprocessed = response.get("UnprocessedItems", {}).get(table_name, [])
        return [
            cast(AttributeMap, request["DeleteRequest"]["Key"])
            for request in unprocessed
            if "DeleteRequest" in request
        ]


def build_dynamodb_client(config: AppConfig) -> DynamoDBClient:
    """
    Creates a DynamoDBClient from the default boto3 credential chain.

    Raises botocore's NoCredentialsError / NoRegionError unchanged so the
    command line can explain how to fix the environment.
    """
    botocore_config = BotocoreConfig(
        connect_timeout=config.connect_timeout_seconds,
        read_timeout=config.read_timeout_seconds,
        retries={"max_attempts": config.max_attempts, "mode": "standard"},
        # One pooled connection per delete worker, plus one for the scan.
        max_pool_connections=config.max_concurrency + 1,
    )
    session = boto3.Session(region_name=config.region)
    logger.debug(
        "Creating DynamoDB client",
        extra={"region": session.region_name, "max_attempts": config.max_attempts},
    )
    return DynamoDBClient(session.client("dynamodb", config=botocore_config))
