"""
DynamoDB store client implementation.

This module provides the production backend on aiobotocore. Items are
converted with boto3's TypeSerializer/TypeDeserializer and conditions are
rendered with boto3's ConditionExpressionBuilder.

Invariants:
    - One store call per operation; no retries
    - Floats are written as Decimal; numbers are read back as int or float
    - Key and filter conditions of one query share placeholder numbering
    - Unprocessed batch items are an error, never silently dropped

How to change safely:
    - Test with DynamoDB Local (tests/e2e) before deploying to AWS
    - Keep the error mapping in _call; callers rely on the store taxonomy
"""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Awaitable, Dict, List, Optional, TypeVar

from aiobotocore.session import get_session
from boto3.dynamodb.conditions import ConditionExpressionBuilder
from boto3.dynamodb.types import Binary, TypeDeserializer, TypeSerializer
from botocore.exceptions import ClientError, EndpointConnectionError

from ..query import QueryPlan
from ..table import MAX_BATCH_SIZE
from ..update import UpdateBuilder
from .base import (
    Item,
    QueryPage,
    StoreConnectionError,
    StoreError,
    StoreTimeoutError,
)

if TYPE_CHECKING:
    from ..config import DynamoDBConfig

logger = logging.getLogger(__name__)

R = TypeVar("R")

_THROTTLING_CODES = frozenset(
    {
        "ProvisionedThroughputExceededException",
        "ThrottlingException",
        "RequestLimitExceeded",
    }
)

_serializer = TypeSerializer()
_deserializer = TypeDeserializer()


def _to_wire_value(value: Any) -> Any:
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: _to_wire_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_to_wire_value(v) for v in value]
    if isinstance(value, tuple):
        return [_to_wire_value(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return {_to_wire_value(v) for v in value}
    return value


def _from_wire_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, Binary):
        return value.value
    if isinstance(value, dict):
        return {k: _from_wire_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_from_wire_value(v) for v in value]
    if isinstance(value, set):
        return {_from_wire_value(v) for v in value}
    return value


def serialize_item(item: Dict[str, Any]) -> Dict[str, Any]:
    """Convert a plain item into DynamoDB attribute values."""
    return {name: _serializer.serialize(_to_wire_value(value)) for name, value in item.items()}


def deserialize_item(item: Dict[str, Any]) -> Dict[str, Any]:
    """Convert DynamoDB attribute values into a plain item."""
    return {name: _from_wire_value(_deserializer.deserialize(value)) for name, value in item.items()}


def build_query_request(table_name: str, plan: QueryPlan) -> Dict[str, Any]:
    """Render a QueryPlan into Query request parameters."""
    builder = ConditionExpressionBuilder()
    key = builder.build_expression(plan.key_condition, is_key_condition=True)

    names = dict(key.attribute_name_placeholders)
    values = dict(key.attribute_value_placeholders)

    request: Dict[str, Any] = {
        "TableName": table_name,
        "KeyConditionExpression": key.condition_expression,
        "ScanIndexForward": plan.scan_forward,
    }

    if plan.filter_condition is not None:
        built = builder.build_expression(plan.filter_condition)
        request["FilterExpression"] = built.condition_expression
        names.update(built.attribute_name_placeholders)
        values.update(built.attribute_value_placeholders)

    request["ExpressionAttributeNames"] = names
    if values:
        request["ExpressionAttributeValues"] = serialize_item(values)

    if plan.index_name:
        request["IndexName"] = plan.index_name
    if plan.limit is not None:
        request["Limit"] = plan.limit
    if plan.start_key:
        request["ExclusiveStartKey"] = serialize_item(plan.start_key)

    return request


class DynamoDBStoreClient:
    """DynamoDB implementation of the StoreClient protocol.

    Uses aiobotocore for async operations.

    Attributes:
        config: DynamoDB connection configuration
        table_name: Table every operation targets

    Example:
        >>> config = DynamoDBConfig(region="us-east-1", endpoint_url="http://localhost:8000")
        >>> client = DynamoDBStoreClient(config, "ecommerce")
        >>> await client.connect()
        >>> await client.put_item(request.item)
    """

    def __init__(self, config: DynamoDBConfig, table_name: str) -> None:
        self.config = config
        self.table_name = table_name
        self._session = None
        self._client_ctx = None
        self._client = None
        self._connected = False

    @property
    def is_connected(self) -> bool:
        """Whether connected to DynamoDB."""
        return self._connected

    async def connect(self) -> None:
        """Connect to DynamoDB and verify the table exists.

        Raises:
            StoreConnectionError: If the endpoint or table is unreachable
        """
        if self._connected:
            return

        self._session = get_session()

        client_config: Dict[str, Any] = {"region_name": self.config.region}
        if self.config.endpoint_url:
            client_config["endpoint_url"] = self.config.endpoint_url
        if self.config.access_key_id and self.config.secret_access_key:
            client_config["aws_access_key_id"] = self.config.access_key_id
            client_config["aws_secret_access_key"] = self.config.secret_access_key

        try:
            self._client_ctx = self._session.create_client("dynamodb", **client_config)
            self._client = await self._client_ctx.__aenter__()

            await asyncio.wait_for(
                self._client.describe_table(TableName=self.table_name),
                timeout=self.config.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            await self._release()
            raise StoreConnectionError("DynamoDB DescribeTable timed out", operation="connect") from e
        except EndpointConnectionError as e:
            await self._release()
            raise StoreConnectionError(
                f"Failed to connect to DynamoDB endpoint: {e}", operation="connect"
            ) from e
        except ClientError as e:
            await self._release()
            error_code = e.response.get("Error", {}).get("Code", "")
            if error_code == "ResourceNotFoundException":
                raise StoreConnectionError(
                    f"DynamoDB table '{self.table_name}' not found", operation="connect"
                ) from e
            raise StoreConnectionError(f"DynamoDB error: {e}", operation="connect") from e

        self._connected = True
        logger.info(
            "Connected to DynamoDB",
            extra={
                "table": self.table_name,
                "region": self.config.region,
                "endpoint": self.config.endpoint_url or "AWS",
            },
        )

    async def _release(self) -> None:
        if self._client_ctx is not None:
            try:
                await self._client_ctx.__aexit__(None, None, None)
            except Exception as e:
                logger.warning(f"Error closing DynamoDB client: {e}")
        self._client_ctx = None
        self._client = None
        self._session = None

    async def close(self) -> None:
        """Close the DynamoDB connection."""
        await self._release()
        self._connected = False
        logger.info("DynamoDB connection closed", extra={"table": self.table_name})

    async def _call(self, operation: str, awaitable: Awaitable[R]) -> R:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.config.timeout_seconds)
        except asyncio.TimeoutError as e:
            raise StoreTimeoutError(f"DynamoDB {operation} timed out", operation=operation) from e
        except EndpointConnectionError as e:
            raise StoreConnectionError(
                f"DynamoDB {operation} failed to reach endpoint: {e}", operation=operation
            ) from e
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "")
            if error_code in _THROTTLING_CODES:
                raise StoreTimeoutError(
                    f"DynamoDB {operation} throttled: {error_code}", operation=operation
                ) from e
            raise StoreError(f"DynamoDB {operation} failed: {e}", operation=operation) from e

    def _require_client(self, operation: str) -> Any:
        if self._client is None:
            raise StoreConnectionError("Not connected to DynamoDB", operation=operation)
        return self._client

    async def put_item(self, item: Item) -> None:
        client = self._require_client("put_item")
        await self._call(
            "put_item",
            client.put_item(TableName=self.table_name, Item=serialize_item(item)),
        )

    async def batch_write(self, items: List[Item]) -> None:
        """Write items with one BatchWriteItem call.

        Raises:
            StoreError: If more than MAX_BATCH_SIZE items are given or any
                item comes back unprocessed
        """
        client = self._require_client("batch_write")
        if len(items) > MAX_BATCH_SIZE:
            raise StoreError(
                f"batch of {len(items)} items exceeds the limit of {MAX_BATCH_SIZE}",
                operation="batch_write",
            )
        if not items:
            return

        requests = [{"PutRequest": {"Item": serialize_item(item)}} for item in items]
        response = await self._call(
            "batch_write",
            client.batch_write_item(RequestItems={self.table_name: requests}),
        )

        unprocessed = response.get("UnprocessedItems", {}).get(self.table_name, [])
        if unprocessed:
            raise StoreError(
                f"{len(unprocessed)} of {len(items)} batch items were not processed",
                operation="batch_write",
            )

        logger.debug(
            "Batch written to DynamoDB",
            extra={"table": self.table_name, "items": len(items)},
        )

    async def get_item(self, key: Dict[str, str]) -> Optional[Item]:
        client = self._require_client("get_item")
        response = await self._call(
            "get_item",
            client.get_item(TableName=self.table_name, Key=serialize_item(key)),
        )
        item = response.get("Item")
        if not item:
            return None
        return deserialize_item(item)

    async def delete_item(self, key: Dict[str, str]) -> None:
        client = self._require_client("delete_item")
        await self._call(
            "delete_item",
            client.delete_item(TableName=self.table_name, Key=serialize_item(key)),
        )

    async def update_item(self, key: Dict[str, str], update: UpdateBuilder) -> Item:
        client = self._require_client("update_item")
        try:
            expression = update.build()
        except ValueError as e:
            raise StoreError(f"invalid update: {e}", operation="update_item") from e

        request: Dict[str, Any] = {
            "TableName": self.table_name,
            "Key": serialize_item(key),
            "UpdateExpression": expression.expression,
            "ExpressionAttributeNames": expression.names,
            "ReturnValues": "ALL_NEW",
        }
        if expression.values:
            request["ExpressionAttributeValues"] = serialize_item(expression.values)

        response = await self._call("update_item", client.update_item(**request))
        return deserialize_item(response.get("Attributes", {}))

    async def query(self, plan: QueryPlan) -> QueryPage:
        client = self._require_client("query")
        request = build_query_request(self.table_name, plan)

        response = await self._call("query", client.query(**request))

        items = [deserialize_item(item) for item in response.get("Items", [])]
        last_key = response.get("LastEvaluatedKey")

        logger.debug(
            "DynamoDB query",
            extra={
                "table": self.table_name,
                "index": plan.index_name,
                "count": len(items),
                "scanned": response.get("ScannedCount"),
                "has_more": bool(last_key),
            },
        )

        return QueryPage(
            items=items,
            last_key=deserialize_item(last_key) if last_key else None,
        )
