"""
E2E test fixtures for EntMap.

These tests require DynamoDB Local (or another DynamoDB endpoint) to be
reachable, e.g.:

    docker run -p 8000:8000 amazon/dynamodb-local
    ENTMAP_E2E_TESTS=1 DYNAMODB_ENDPOINT_URL=http://localhost:8000 pytest tests/e2e

Each test gets a fresh table, created and dropped around it.
"""

import os
import uuid

import pytest
from aiobotocore.session import get_session

from sdk.entmap_sdk.client import EntityStore
from sdk.entmap_sdk.config import DynamoDBConfig
from sdk.entmap_sdk.store.dynamodb import DynamoDBStoreClient
from sdk.entmap_sdk.table import Table

# Skip E2E tests if not in E2E mode
E2E_ENABLED = os.environ.get("ENTMAP_E2E_TESTS", "0") == "1"


@pytest.fixture
def dynamodb_config() -> DynamoDBConfig:
    """Connection settings for the test endpoint."""
    if not E2E_ENABLED:
        pytest.skip("E2E tests disabled. Set ENTMAP_E2E_TESTS=1 to enable.")

    return DynamoDBConfig(
        region=os.environ.get("AWS_REGION", "us-east-1"),
        endpoint_url=os.environ.get("DYNAMODB_ENDPOINT_URL", "http://localhost:8000"),
        access_key_id=os.environ.get("AWS_ACCESS_KEY_ID", "local"),
        secret_access_key=os.environ.get("AWS_SECRET_ACCESS_KEY", "local"),
    )


@pytest.fixture
async def table_name(dynamodb_config):
    """Create a table with the ref index and drop it afterwards."""
    name = f"entmap_e2e_{uuid.uuid4().hex[:8]}"
    session = get_session()

    async with session.create_client(
        "dynamodb",
        region_name=dynamodb_config.region,
        endpoint_url=dynamodb_config.endpoint_url,
        aws_access_key_id=dynamodb_config.access_key_id,
        aws_secret_access_key=dynamodb_config.secret_access_key,
    ) as client:
        await client.create_table(
            TableName=name,
            AttributeDefinitions=[
                {"AttributeName": "hk", "AttributeType": "S"},
                {"AttributeName": "sk", "AttributeType": "S"},
                {"AttributeName": "label", "AttributeType": "S"},
                {"AttributeName": "gsi1_sk", "AttributeType": "S"},
            ],
            KeySchema=[
                {"AttributeName": "hk", "KeyType": "HASH"},
                {"AttributeName": "sk", "KeyType": "RANGE"},
            ],
            GlobalSecondaryIndexes=[
                {
                    "IndexName": "ref-index",
                    "KeySchema": [
                        {"AttributeName": "label", "KeyType": "HASH"},
                        {"AttributeName": "gsi1_sk", "KeyType": "RANGE"},
                    ],
                    "Projection": {"ProjectionType": "ALL"},
                }
            ],
            BillingMode="PAY_PER_REQUEST",
        )
        await client.get_waiter("table_exists").wait(TableName=name)

        yield name

        await client.delete_table(TableName=name)


@pytest.fixture
async def store(dynamodb_config, table_name):
    """EntityStore connected to the test table."""
    store = EntityStore(DynamoDBStoreClient(dynamodb_config, table_name), Table(table_name))
    await store.connect()
    yield store
    await store.close()
