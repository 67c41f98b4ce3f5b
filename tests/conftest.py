# SPDX-License-Identifier: Apache-2.0
"""
Shared fixtures for the vector store tests.

Stores are built around `MockMilvusClient`, so no Milvus server is needed.
"""

from __future__ import annotations

import pytest

from tests.mock.mock_milvus_client import MockMilvusClient
from vectorstore_sdk.vector.milvus_adapter import MilvusVectorStore
from vectorstore_sdk.vector.vector_base import FieldKind, StoreConfiguration


@pytest.fixture
def config() -> StoreConfiguration:
    """Default configuration: int64 keys, one extra field, metadata pass-through."""
    return StoreConfiguration(
        collection_name="docs",
        additional_fields={"fileName": FieldKind.TEXT},
    )


@pytest.fixture
def varchar_config() -> StoreConfiguration:
    return StoreConfiguration(
        collection_name="docs",
        primary_key_type="varchar",
        primary_key_field="pk",
        chunk_field_name="text",
    )


@pytest.fixture
def client() -> MockMilvusClient:
    return MockMilvusClient()


@pytest.fixture
def store(config, client) -> MilvusVectorStore:
    """Milvus store wired to the recording client."""
    return MilvusVectorStore(config=config, client=client)


@pytest.fixture
def varchar_store(varchar_config, client) -> MilvusVectorStore:
    return MilvusVectorStore(config=varchar_config, client=client)
