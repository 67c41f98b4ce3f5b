# vectorstore_sdk/vector/__init__.py
# SPDX-License-Identifier: Apache-2.0

"""
Vector Store SDK - Public API

Records, filters, configuration and errors are re-exported here for clean
imports. The Milvus backend lives in `vectorstore_sdk.vector.milvus_adapter`
so that importing the model does not require pymilvus.
"""

from vectorstore_sdk.vector.vector_base import (
    # Records
    Chunk,
    VectorEntry,
    VectorMatch,

    # Filters and queries
    FilterOperator,
    FilterCondition,
    MetadataFilter,
    MetadataFilterGroup,
    FilterNode,
    VectorStoreQuery,

    # Error types
    VectorStoreError,
    InitializationError,
    ConversionError,
    ValidationError,
    BackendError,

    # Configuration
    FieldKind,
    StoreConfiguration,
    DEFAULT_CHUNK_FIELD,
    DEFAULT_TOP_K,

    # Metrics
    MetricsSink,
    NoopMetrics,

    # Store interface
    BaseVectorStore,
)
from vectorstore_sdk.vector.filter_expression import (
    compile_filter,
    serialize_value,
)

__all__ = [
    "Chunk",
    "VectorEntry",
    "VectorMatch",
    "FilterOperator",
    "FilterCondition",
    "MetadataFilter",
    "MetadataFilterGroup",
    "FilterNode",
    "VectorStoreQuery",
    "VectorStoreError",
    "InitializationError",
    "ConversionError",
    "ValidationError",
    "BackendError",
    "FieldKind",
    "StoreConfiguration",
    "DEFAULT_CHUNK_FIELD",
    "DEFAULT_TOP_K",
    "MetricsSink",
    "NoopMetrics",
    "BaseVectorStore",
    "compile_filter",
    "serialize_value",
]

__version__ = "0.1.0"
