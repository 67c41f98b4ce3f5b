# vectorstore_sdk/vector/vector_base.py
# SPDX-License-Identifier: Apache-2.0
"""
Vector Store SDK - generic record model and store contract.

Purpose
-------
A backend-neutral API for adding, deleting and querying embedding records
(id + embedding + typed chunk + metadata), with structured errors and
low-cardinality observability. Concrete backends (see `milvus_adapter`)
override the `_do_*` hooks and inherit validation, serialization of calls and
metrics from `BaseVectorStore`.

This file provides:

- Typed record, filter and query contracts (frozen dataclasses)
- The error taxonomy shared by every store
- `StoreConfiguration`, the immutable per-store configuration
- `BaseVectorStore`, the validating, lock-serialized facade

Deliberate Non-Goals
--------------------
- No embedding model management or text-to-vector transformations
- No collection/index lifecycle management
- No ranking, re-ranking or score normalization

Concurrency
-----------
Every public operation (`add`, `delete`, `query`) runs under one per-instance
`asyncio.Lock`: while one operation is in flight, other callers wait. There is
no retry or timeout logic here; those belong to the transport. A cancelled
operation stops after its in-flight backend call returns.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    Any,
    Dict,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    Union,
)

LOG = logging.getLogger(__name__)

DEFAULT_CHUNK_FIELD = "content"
DEFAULT_TYPE_FIELD = "type"
DEFAULT_PRIMARY_KEY_FIELD = "id"
DEFAULT_VECTOR_FIELD = "vector"
DEFAULT_TOP_K = 4

PRIMARY_KEY_TYPES = ("int64", "varchar")

# =============================================================================
# Record model
# =============================================================================

@dataclass(frozen=True)
class Chunk:
    """
    A typed content unit attached to a vector entry.

    Attributes:
        type: Free-form type tag (e.g. "text", "image_caption")
        content: The content itself
    """
    type: str
    content: str


@dataclass(frozen=True)
class VectorEntry:
    """
    A record to write into the store.

    Attributes:
        id: Identifier; must be convertible to the backend's key type
        embedding: The embedding as a sequence of floats
        chunk: Typed payload
        metadata: Filterable side-payload (scalars, arrays, timestamps)
    """
    id: str
    embedding: Sequence[float]
    chunk: Chunk
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class VectorMatch:
    """
    One result of a query.

    Attributes:
        id: Identifier, always a string regardless of the backend key type
        embedding: Stored embedding when the backend returned it, else empty
        chunk: Typed payload rebuilt from the stored fields
        similarity_score: Backend score, passed through verbatim
        metadata: Values of the configured additional fields
    """
    id: str
    embedding: List[float]
    chunk: Chunk
    similarity_score: float
    metadata: Dict[str, Any] = field(default_factory=dict)

# =============================================================================
# Filter model
# =============================================================================

class FilterOperator(str, Enum):
    """Comparison operators; each value is the backend's symbol for it."""
    EQUAL = "=="
    NOT_EQUAL = "!="
    GREATER_THAN = ">"
    GREATER_THAN_OR_EQUAL = ">="
    LESS_THAN = "<"
    LESS_THAN_OR_EQUAL = "<="
    IN = "in"
    NOT_IN = "not in"
    LIKE = "like"


class FilterCondition(str, Enum):
    AND = "and"
    OR = "or"


@dataclass(frozen=True)
class MetadataFilter:
    """
    Leaf comparison `key operator value`.

    `operator` is normally a `FilterOperator`; a plain string is passed through
    to the backend unchanged.
    """
    key: str
    operator: Union[FilterOperator, str]
    value: Any


@dataclass(frozen=True)
class MetadataFilterGroup:
    """
    AND/OR node over leaves and nested groups.

    A group without children means "no filter", never "match nothing".
    """
    condition: Union[FilterCondition, str]
    filters: Sequence["FilterNode"] = ()


FilterNode = Union[MetadataFilter, MetadataFilterGroup]


@dataclass(frozen=True)
class VectorStoreQuery:
    """
    Query request.

    Attributes:
        embedding: Query embedding; may be omitted or empty only when `filters` is given
        top_k: Maximum number of results; None uses the store default, 0 is invalid
        filters: Optional metadata filter tree
    """
    embedding: Optional[Sequence[float]] = None
    top_k: Optional[int] = None
    filters: Optional[MetadataFilterGroup] = None

# =============================================================================
# Normalized Errors
# =============================================================================

class VectorStoreError(Exception):
    """
    Base exception for all vector store errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (UPPER_SNAKE_CASE)
        retry_after_ms: Suggested delay before a caller-side retry (None if not retryable)
        details: Additional JSON-serializable context
    """
    def __init__(
        self,
        message: str = "",
        *,
        code: Optional[str] = None,
        retry_after_ms: Optional[int] = None,
        details: Optional[Mapping[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.retry_after_ms = retry_after_ms
        self.details = dict(details or {})

    def asdict(self) -> Dict[str, Any]:
        """Convert error to dictionary for serialization and logging."""
        return {
            "error": type(self).__name__,
            "message": self.message,
            "code": self.code,
            "retry_after_ms": self.retry_after_ms,
            "details": {k: self.details[k] for k in sorted(self.details)},
        }

# Subclasses set default `code` in UPPER_SNAKE_CASE where not explicitly provided.

class InitializationError(VectorStoreError):
    """Store construction failed (bad configuration, client could not be built)."""
    def __init__(self, message: str, **kwargs: Any):
        kwargs.setdefault("code", "INITIALIZATION_ERROR")
        super().__init__(message, **kwargs)

class ConversionError(VectorStoreError):
    """An id, embedding or metadata value could not be coerced to the backend type."""
    def __init__(self, message: str, **kwargs: Any):
        kwargs.setdefault("code", "CONVERSION_ERROR")
        super().__init__(message, **kwargs)

class ValidationError(VectorStoreError):
    """A caller-supplied request violates a precondition; the backend is not contacted."""
    def __init__(self, message: str, **kwargs: Any):
        kwargs.setdefault("code", "VALIDATION_ERROR")
        super().__init__(message, **kwargs)

class BackendError(VectorStoreError):
    """
    The downstream call failed.

    The message is stable per operation ("failed to query vector entries");
    the original exception is kept in `cause` (and as `__cause__` when raised
    with `from`).
    """
    def __init__(self, message: str, *, cause: Optional[BaseException] = None, **kwargs: Any):
        kwargs.setdefault("code", "UNAVAILABLE")
        super().__init__(message, **kwargs)
        self.cause = cause

    def __str__(self) -> str:
        if self.cause is None:
            return self.message
        return f"{self.message}: {self.cause}"

# =============================================================================
# Configuration
# =============================================================================

class FieldKind(str, Enum):
    """Expected generic type of a stored field, used to coerce and default reads."""
    TEXT = "text"
    FLOAT_VECTOR = "float_vector"
    NUMBER = "number"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    ARRAY = "array"
    ANY = "any"


_OPTION_NAMES = {
    "collectionName": "collection_name",
    "chunkFieldName": "chunk_field_name",
    "primaryKeyField": "primary_key_field",
    "primaryKeyType": "primary_key_type",
    "vectorField": "vector_field",
    "typeFieldName": "type_field_name",
    "additionalFields": "additional_fields",
    "topK": "top_k",
    "storeMetadata": "store_metadata",
    "returnVectors": "return_vectors",
    "metricType": "metric_type",
}


def _normalize_fields(fields: Any) -> Tuple[Tuple[str, FieldKind], ...]:
    if fields is None:
        return ()
    if isinstance(fields, str):
        fields = [fields]
    items = fields.items() if isinstance(fields, Mapping) else fields
    out: Dict[str, FieldKind] = {}
    for item in items:
        if isinstance(item, tuple) and len(item) == 2:
            name, kind = item
        else:
            name, kind = item, FieldKind.ANY
        try:
            out[str(name)] = FieldKind(kind)
        except ValueError as exc:
            raise InitializationError(
                f"unknown field kind '{kind}' for additional field '{name}'",
                code="BAD_CONFIG",
            ) from exc
    return tuple(out.items())


@dataclass(frozen=True)
class StoreConfiguration:
    """
    Immutable configuration shared by every operation on one store.

    Attributes:
        collection_name: Target collection (required)
        primary_key_field: Name of the primary-key field
        primary_key_type: "int64" (ids parsed as integers) or "varchar"
        vector_field: Name of the embedding field
        chunk_field_name: Field holding `chunk.content`; falsy falls back to "content"
        type_field_name: Field holding `chunk.type`
        additional_fields: Extra fields to project on read, as names or name -> FieldKind.
            Bare names are `FieldKind.ANY`: values come back as stored, and a
            field the backend omits reads as None. Give a kind to get the
            typed defaults ("" for text, 0 for integers, [] for arrays, ...).
        top_k: Default result count when a query does not set one
        store_metadata: Write entry metadata as row properties (pass-through variant)
        return_vectors: Request the embedding field on read
        metric_type: Metric passed to similarity searches
    """
    collection_name: str
    primary_key_field: str = DEFAULT_PRIMARY_KEY_FIELD
    primary_key_type: str = "int64"
    vector_field: str = DEFAULT_VECTOR_FIELD
    chunk_field_name: Optional[str] = DEFAULT_CHUNK_FIELD
    type_field_name: str = DEFAULT_TYPE_FIELD
    additional_fields: Union[Sequence[str], Mapping[str, FieldKind]] = ()
    top_k: int = DEFAULT_TOP_K
    store_metadata: bool = True
    return_vectors: bool = False
    metric_type: str = "COSINE"

    def __post_init__(self) -> None:
        if not isinstance(self.collection_name, str) or not self.collection_name.strip():
            raise InitializationError("collection_name must be a non-empty string", code="BAD_CONFIG")
        if not self.chunk_field_name:
            object.__setattr__(self, "chunk_field_name", DEFAULT_CHUNK_FIELD)
        for name in ("primary_key_field", "vector_field", "type_field_name"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                raise InitializationError(f"{name} must be a non-empty string", code="BAD_CONFIG")
        pk_type = str(self.primary_key_type or "").strip().lower()
        if pk_type not in PRIMARY_KEY_TYPES:
            raise InitializationError(
                f"primary_key_type must be one of {list(PRIMARY_KEY_TYPES)}",
                code="BAD_CONFIG",
                details={"primary_key_type": self.primary_key_type},
            )
        object.__setattr__(self, "primary_key_type", pk_type)
        if isinstance(self.top_k, bool) or not isinstance(self.top_k, int) or self.top_k <= 0:
            raise InitializationError("top_k must be a positive integer", code="BAD_CONFIG")
        object.__setattr__(self, "metric_type", str(self.metric_type or "COSINE").upper())

        # Frozen as a tuple of (name, kind) pairs so the dataclass stays hashable.
        object.__setattr__(self, "additional_fields", _normalize_fields(self.additional_fields))

    @classmethod
    def from_options(cls, options: Mapping[str, Any]) -> "StoreConfiguration":
        """
        Build a configuration from an option mapping.

        Accepts the camelCase names (`collectionName`, `chunkFieldName`,
        `primaryKeyField`, `additionalFields`, `topK`, ...) as well as the
        attribute names themselves. Unknown options are rejected.
        """
        kwargs: Dict[str, Any] = {}
        attr_names = set(_OPTION_NAMES.values())
        for key, value in options.items():
            name = _OPTION_NAMES.get(key, key)
            if name not in attr_names:
                raise InitializationError(
                    f"unknown store option '{key}'",
                    code="BAD_CONFIG",
                    details={"option": key},
                )
            kwargs[name] = value
        if "collection_name" not in kwargs:
            raise InitializationError("collectionName is required", code="BAD_CONFIG")
        return cls(**kwargs)

    @property
    def extra_fields(self) -> Dict[str, FieldKind]:
        """Additional projected fields as name -> FieldKind."""
        return dict(self.additional_fields)  # type: ignore[arg-type]

    def field_schema(self) -> Dict[str, FieldKind]:
        """
        Explicit read schema: every field requested from the backend and its kind.

        The chunk fields are always part of it, the vector field only when
        `return_vectors` is set. Additional fields cannot redefine them.
        """
        schema: Dict[str, FieldKind] = {
            self.type_field_name: FieldKind.TEXT,
            str(self.chunk_field_name): FieldKind.TEXT,
        }
        if self.return_vectors:
            schema[self.vector_field] = FieldKind.FLOAT_VECTOR
        for name, kind in self.extra_fields.items():
            schema.setdefault(name, kind)
        return schema

    def output_fields(self) -> List[str]:
        """Field names to project on read: the primary key, then the schema in order."""
        fields = [self.primary_key_field]
        fields.extend(name for name in self.field_schema() if name != self.primary_key_field)
        return fields

# =============================================================================
# Metrics Interface (low-cardinality)
# =============================================================================

class MetricsSink(Protocol):
    """
    Protocol for metrics collection implementations.

    Metrics must be low-cardinality: no ids, no metadata values.
    """
    def observe(
        self,
        *,
        component: str,
        op: str,
        ms: float,
        ok: bool,
        code: str = "OK",
        extra: Optional[Mapping[str, Any]] = None,
    ) -> None: ...

    def counter(
        self,
        *,
        component: str,
        name: str,
        value: int = 1,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> None: ...


class NoopMetrics:
    """No-operation metrics sink for testing or when metrics are disabled."""
    def observe(self, **_: Any) -> None: ...
    def counter(self, **_: Any) -> None: ...

# =============================================================================
# Base store (validation, serialization, metrics)
# =============================================================================

class BaseVectorStore:
    """
    Base class for vector store backends.

    Provides request validation, per-instance serialization and metrics.
    Backends implement `_do_add`, `_do_delete` and `_do_query`; those hooks
    always run while the instance lock is held.
    """

    _component = "vector_store"

    def __init__(
        self,
        *,
        config: StoreConfiguration,
        metrics: Optional[MetricsSink] = None,
    ) -> None:
        if not isinstance(config, StoreConfiguration):
            raise InitializationError(
                "config must be a StoreConfiguration",
                code="BAD_CONFIG",
            )
        self._config = config
        self._metrics: MetricsSink = metrics or NoopMetrics()
        self._lock = asyncio.Lock()

    @property
    def config(self) -> StoreConfiguration:
        return self._config

    # --- internal helpers ---

    def _record(self, op: str, t0: float, ok: bool, *, code: str = "OK", **extra: Any) -> None:
        """Record operation metrics; never lets the sink break the operation."""
        try:
            ms = (time.monotonic() - t0) * 1000.0
            self._metrics.observe(
                component=self._component,
                op=op,
                ms=ms,
                ok=ok,
                code=code,
                extra=dict(extra) or None,
            )
        except Exception:
            LOG.debug("metrics sink failed for %s", op, exc_info=True)

    def _count(self, name: str, value: int) -> None:
        try:
            self._metrics.counter(component=self._component, name=name, value=value)
        except Exception:
            LOG.debug("metrics counter %s failed", name, exc_info=True)

    @staticmethod
    def _normalize_ids(ids: Union[str, Sequence[str]]) -> List[str]:
        if isinstance(ids, str):
            return [ids]
        if ids is None:
            raise ValidationError("ids must be a string or a sequence of strings")
        return list(ids)

    def _resolve_top_k(self, top_k: Optional[int]) -> int:
        if top_k is None:
            return self._config.top_k
        if isinstance(top_k, bool) or not isinstance(top_k, int) or top_k <= 0:
            raise ValidationError(
                "top_k must be a positive integer",
                details={"top_k": top_k},
            )
        return top_k

    @staticmethod
    def _has_embedding(request: VectorStoreQuery) -> bool:
        """An empty embedding counts as absent."""
        return request.embedding is not None and len(request.embedding) > 0

    @classmethod
    def _validate_query(cls, request: VectorStoreQuery) -> None:
        if not cls._has_embedding(request) and request.filters is None:
            raise ValidationError("empty embedding or filters not allowed simultaneously")

    # --- public API (validation + serialization + instrumentation) ---

    async def add(self, entries: Sequence[VectorEntry]) -> None:
        """
        Write entries in order, one backend upsert per entry.

        The first failure aborts the remaining entries; entries already
        written are not rolled back.
        """
        entries = list(entries or ())
        if not entries:
            return
        async with self._lock:
            t0 = time.monotonic()
            try:
                written = await self._do_add(entries)
            except VectorStoreError as e:
                self._record("add", t0, False, code=e.code or type(e).__name__, entries=len(entries))
                raise
            self._record("add", t0, True, entries=len(entries))
            self._count("vectors_upserted", written)

    async def delete(self, ids: Union[str, Sequence[str]]) -> None:
        """Delete one id or a sequence of ids; the first failure aborts the call."""
        id_list = self._normalize_ids(ids)
        if not id_list:
            return
        async with self._lock:
            t0 = time.monotonic()
            try:
                deleted = await self._do_delete(id_list)
            except VectorStoreError as e:
                self._record("delete", t0, False, code=e.code or type(e).__name__, ids=len(id_list))
                raise
            self._record("delete", t0, True, ids=len(id_list))
            self._count("vectors_deleted", deleted)

    async def query(self, request: VectorStoreQuery) -> List[VectorMatch]:
        """
        Run a similarity search, or a filter-only lookup when no embedding is given.

        Raises:
            ValidationError: top_k is 0 (or otherwise not positive), or neither
                an embedding nor filters were supplied.
        """
        top_k = self._resolve_top_k(request.top_k)
        self._validate_query(request)
        async with self._lock:
            t0 = time.monotonic()
            mode = "search" if self._has_embedding(request) else "filter"
            try:
                matches = await self._do_query(request, top_k)
            except VectorStoreError as e:
                self._record("query", t0, False, code=e.code or type(e).__name__, mode=mode, top_k=top_k)
                raise
            self._record("query", t0, True, mode=mode, top_k=top_k, matches=len(matches))
            self._count("queries", 1)
            return matches

    # --- backend hooks ---

    async def _do_add(self, entries: List[VectorEntry]) -> int:
        """Write entries; return how many were written."""
        raise NotImplementedError

    async def _do_delete(self, ids: List[str]) -> int:
        """Delete ids; return how many delete calls were issued."""
        raise NotImplementedError

    async def _do_query(self, request: VectorStoreQuery, top_k: int) -> List[VectorMatch]:
        raise NotImplementedError


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
    "MetricsSink",
    "NoopMetrics",
    "BaseVectorStore",
    "DEFAULT_CHUNK_FIELD",
    "DEFAULT_TOP_K",
]
