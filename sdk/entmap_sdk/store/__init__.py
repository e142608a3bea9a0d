"""
Store clients for EntMap.

This module provides a pluggable single-table backend interface:
- DynamoDB (production, via aiobotocore)
- In-memory (for testing and local development)

Invariants:
    - Clients perform exactly one backend request per call
    - Items crossing this boundary are plain dicts

How to change safely:
    - New backends must implement the StoreClient protocol
    - Run tests/e2e against DynamoDB Local after touching dynamodb.py
"""

from .base import (
    QueryPage,
    StoreClient,
    StoreConnectionError,
    StoreError,
    StoreTimeoutError,
    create_store_client,
)
from .dynamodb import DynamoDBStoreClient
from .memory import InMemoryStoreClient, evaluate_condition

__all__ = [
    # Protocol and types
    "StoreClient",
    "QueryPage",
    "StoreError",
    "StoreConnectionError",
    "StoreTimeoutError",
    # Factory
    "create_store_client",
    # Implementations
    "DynamoDBStoreClient",
    "InMemoryStoreClient",
    "evaluate_condition",
]
