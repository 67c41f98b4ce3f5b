# vectorstore_sdk/vector/milvus_adapter.py
# SPDX-License-Identifier: Apache-2.0
"""
Milvus vector store.

This module implements `BaseVectorStore` on top of a Milvus collection through
`pymilvus.MilvusClient`.

Goals
-----
- Map add / delete / query onto Milvus upsert / delete / search / query calls.
- Compile metadata filter trees into Milvus boolean expressions.
- Normalize Milvus failures into `BackendError` with a stable message.

Usage
-----
    from vectorstore_sdk.vector import (
        Chunk, VectorEntry, VectorStoreQuery, StoreConfiguration,
    )
    from vectorstore_sdk.vector.milvus_adapter import create_store

    store = create_store(
        "http://localhost:19530",
        None,
        {"collectionName": "docs", "additionalFields": ["fileName"]},
        timeout=10,
    )

    await store.add([
        VectorEntry(
            id="1",
            embedding=[...],
            chunk=Chunk(type="text", content="hello"),
            metadata={"fileName": "test.txt"},
        ),
    ])
    matches = await store.query(VectorStoreQuery(embedding=[...], top_k=5))

Design notes
------------
- Async-first: every Milvus call runs via `asyncio.to_thread`. A cancelled
  caller waits for the in-flight call to return before giving up the lock.
- Does *not* manage collection lifecycle; collections and indexes are created
  elsewhere. `query` only makes sure the collection is loaded.
- Entries are upserted one per call, in order; the first failure stops the batch.
- Scores are Milvus `distance` values, untouched.
- Timeouts come from the client (`MilvusClient(timeout=...)`); nothing here
  retries.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, TypeVar, Union

from pymilvus import MilvusClient
from pymilvus.exceptions import MilvusException

from vectorstore_sdk.vector.filter_expression import compile_filter
from vectorstore_sdk.vector.milvus_mapping import EntryMapper, MatchBuilder
from vectorstore_sdk.vector.vector_base import (
    BackendError,
    BaseVectorStore,
    ConversionError,
    InitializationError,
    MetricsSink,
    StoreConfiguration,
    ValidationError,
    VectorEntry,
    VectorMatch,
    VectorStoreQuery,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MILVUS_URI = "http://localhost:19530"

# Milvus server error codes (merr): collection not found / not loaded,
# rate limited / force denied, not authenticated.
_NOT_FOUND_CODES = {100, 101}
_RATE_LIMIT_CODES = {8, 9}
_AUTH_CODES = {1400}

_OP_MESSAGES = {
    "add": "failed to add vector entries",
    "delete": "failed to delete vector entries",
    "query": "failed to query vector entries",
}


class MilvusVectorStore(BaseVectorStore):
    """
    Vector store backed by one Milvus collection.

    The primary key, vector, type and content fields come from the
    `StoreConfiguration`; metadata is written as dynamic fields when
    `store_metadata` is set, which requires a collection with dynamic fields
    enabled.
    """

    _component = "vector_milvus"

    def __init__(
        self,
        *,
        config: Union[StoreConfiguration, Mapping[str, Any]],
        client: Optional[MilvusClient] = None,
        uri: Optional[str] = None,
        token: Optional[str] = None,
        metrics: Optional[MetricsSink] = None,
        **transport_options: Any,
    ) -> None:
        if isinstance(config, Mapping):
            config = StoreConfiguration.from_options(config)
        super().__init__(config=config, metrics=metrics)

        if client is None:
            uri = uri or os.getenv("MILVUS_URI") or DEFAULT_MILVUS_URI
            token = token if token is not None else os.getenv("MILVUS_TOKEN")
            client_kwargs: Dict[str, Any] = {"uri": uri}
            if token:
                client_kwargs["token"] = token
            client_kwargs.update(transport_options)
            try:
                client = MilvusClient(**client_kwargs)
            except Exception as exc:  # noqa: BLE001
                raise InitializationError(
                    "failed to create Milvus client",
                    details={"uri": uri},
                ) from exc

        self._client = client
        self._mapper = EntryMapper(config)
        self._builder = MatchBuilder(config)

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #

    def _get_client(self) -> MilvusClient:
        """Return the underlying Milvus client."""
        return self._client

    @staticmethod
    async def _run_in_thread(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """
        Run blocking client calls on a worker thread.

        The thread cannot be interrupted, so on cancellation the caller waits
        for it to finish before the cancellation propagates. The instance lock
        is therefore never released while a backend call is still running.
        """
        fut = asyncio.ensure_future(asyncio.to_thread(func, *args, **kwargs))
        try:
            return await asyncio.shield(fut)
        except asyncio.CancelledError:
            while not fut.done():
                try:
                    await asyncio.wait({fut})
                except asyncio.CancelledError:
                    continue
            if not fut.cancelled() and fut.exception() is not None:
                logger.debug("backend call failed after cancellation: %r", fut.exception())
            raise

    async def _call_milvus(self, func: Callable[..., T], op: str, **kwargs: Any) -> T:
        """Invoke a Milvus client function in a worker thread, translating failures."""
        try:
            return await self._run_in_thread(func, **kwargs)
        except Exception as exc:  # noqa: BLE001
            raise self._translate_error(exc, op=op) from exc

    def _translate_error(self, err: Exception, *, op: str) -> BackendError:
        """
        Map a Milvus failure onto a `BackendError`.

        The message is always the stable one for `op`; the code and retry hint
        are classified from the cause for callers that want to retry.
        """
        message = _OP_MESSAGES.get(op, f"failed to {op} vector entries")
        raw = str(err) or type(err).__name__
        lowered = raw.lower()
        details: Dict[str, Any] = {"op": op, "collection": self._config.collection_name}
        logger.debug("Milvus error in %s: %r", op, err)

        status_int: Optional[int] = None
        if isinstance(err, MilvusException):
            try:
                status_int = int(getattr(err, "code", None))
            except (TypeError, ValueError):
                status_int = None
            if status_int is not None:
                details["milvus_code"] = status_int

        if (
            status_int in _RATE_LIMIT_CODES
            or "rate limit" in lowered
            or "too many requests" in lowered
            or "resource exhausted" in lowered
            or "quota" in lowered
        ):
            return BackendError(message, cause=err, code="RESOURCE_EXHAUSTED", retry_after_ms=500, details=details)

        if (
            status_int in _AUTH_CODES
            or "unauthorized" in lowered
            or "unauthenticated" in lowered
            or "forbidden" in lowered
            or "permission denied" in lowered
        ):
            return BackendError(message, cause=err, code="AUTH_ERROR", details=details)

        if (
            status_int in _NOT_FOUND_CODES
            or "collection not found" in lowered
            or "not loaded" in lowered
            or "can't find collection" in lowered
        ):
            return BackendError(message, cause=err, code="INDEX_NOT_READY", retry_after_ms=1000, details=details)

        if (
            "timeout" in lowered
            or "timed out" in lowered
            or "deadline exceeded" in lowered
            or "temporarily unavailable" in lowered
            or "connection" in lowered
            or isinstance(err, (TimeoutError, ConnectionError))
        ):
            return BackendError(message, cause=err, code="TRANSIENT_NETWORK", retry_after_ms=500, details=details)

        if "invalid" in lowered or "illegal" in lowered or "bad request" in lowered or "cannot parse" in lowered:
            return BackendError(message, cause=err, code="BAD_REQUEST", details=details)

        return BackendError(message, cause=err, code="UNAVAILABLE", details=details)

    async def load(self) -> None:
        """Make sure the collection is loaded for reads; idempotent on the Milvus side."""
        await self._call_milvus(
            self._get_client().load_collection,
            "query",
            collection_name=self._config.collection_name,
        )

    # ------------------------------------------------------------------ #
    # BaseVectorStore backend hooks
    # ------------------------------------------------------------------ #

    async def _do_add(self, entries: List[VectorEntry]) -> int:
        client = self._get_client()
        collection = self._config.collection_name
        written = 0
        for index, entry in enumerate(entries):
            try:
                row = self._mapper.to_backend_record(entry)
                await self._call_milvus(client.upsert, "add", collection_name=collection, data=[row])
            except ConversionError as err:
                self._log_partial("add", written, len(entries))
                raise ConversionError(
                    f"failed to add vector entries: {err.message}",
                    details={**err.details, "index": index},
                ) from err
            except BackendError as err:
                self._log_partial("add", written, len(entries))
                err.details.setdefault("index", index)
                raise
            written += 1
        return written

    async def _do_delete(self, ids: List[str]) -> int:
        client = self._get_client()
        collection = self._config.collection_name
        deleted = 0
        for raw_id in ids:
            key = self._mapper.to_primary_key(raw_id)
            await self._call_milvus(client.delete, "delete", collection_name=collection, ids=[key])
            deleted += 1
        return deleted

    async def _do_query(self, request: VectorStoreQuery, top_k: int) -> List[VectorMatch]:
        cfg = self._config
        client = self._get_client()

        try:
            expr = compile_filter(request.filters)
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"invalid filter: {exc}") from exc

        embedding: Optional[List[float]] = None
        if self._has_embedding(request):
            embedding = self._mapper.to_vector(request.embedding)

        await self.load()

        output_fields = cfg.output_fields()

        if embedding is None:
            rows = await self._call_milvus(
                client.query,
                "query",
                collection_name=cfg.collection_name,
                filter=expr,
                output_fields=output_fields,
                limit=top_k,
            )
            return [
                self._builder.from_query_row(row)
                for row in (rows or [])
                if isinstance(row, Mapping) and row.get(cfg.primary_key_field) is not None
            ]

        resp = await self._call_milvus(
            client.search,
            "query",
            collection_name=cfg.collection_name,
            data=[embedding],
            anns_field=cfg.vector_field,
            filter=expr,
            limit=top_k,
            output_fields=output_fields,
            search_params={"metric_type": cfg.metric_type, "params": {}},
        )

        # resp is one list of hits per query vector.
        first_hits: Sequence[Any] = resp[0] if resp else []
        return [self._builder.from_search_hit(hit) for hit in first_hits]

    def _log_partial(self, op: str, done: int, total: int) -> None:
        if done:
            logger.warning(
                "%s aborted after %d of %d entries on collection %s; written entries are kept",
                op,
                done,
                total,
                self._config.collection_name,
            )


def create_store(
    service_url: Optional[str] = None,
    api_key: Optional[str] = None,
    config: Union[StoreConfiguration, Mapping[str, Any], None] = None,
    *,
    metrics: Optional[MetricsSink] = None,
    **transport_options: Any,
) -> MilvusVectorStore:
    """
    Build a Milvus store from a service URL, credentials and configuration.

    Args:
        service_url: Milvus URI; falls back to MILVUS_URI, then localhost.
        api_key: Token ("user:password" or an API key); falls back to MILVUS_TOKEN.
        config: `StoreConfiguration` or an option mapping (`collectionName`, ...).
        transport_options: Passed to `MilvusClient` (e.g. `timeout`, `db_name`).

    Raises:
        InitializationError: configuration is invalid or the client cannot be built.
    """
    if config is None:
        raise InitializationError("config is required", code="BAD_CONFIG")
    return MilvusVectorStore(
        config=config,
        uri=service_url,
        token=api_key,
        metrics=metrics,
        **transport_options,
    )


__all__ = [
    "MilvusVectorStore",
    "create_store",
]
