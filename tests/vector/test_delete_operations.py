# SPDX-License-Identifier: Apache-2.0
"""
Vector store - delete operations.
"""

import pytest

from vectorstore_sdk.vector.vector_base import BackendError, ConversionError

pytestmark = pytest.mark.asyncio


async def test_delete_single_id_string(store, client):
    """Verify a single id string is accepted and converted to int64."""
    await store.delete("42")
    assert client.calls_to("delete") == [{"collection_name": "docs", "ids": [42]}]


async def test_delete_sequence_issues_one_call_per_id(store, client):
    """Verify each id is deleted with its own call, in order."""
    await store.delete(["1", "2", "3"])
    assert [call["ids"] for call in client.calls_to("delete")] == [[1], [2], [3]]


async def test_delete_empty_sequence_is_noop(store, client):
    """Verify deleting nothing makes no backend call."""
    await store.delete([])
    assert client.calls == []


async def test_delete_non_numeric_id_is_conversion_error(store, client):
    """Verify 'abc' cannot address an int64 key and nothing is deleted."""
    with pytest.raises(ConversionError):
        await store.delete("abc")
    assert client.calls_to("delete") == []


async def test_delete_stops_at_first_unconvertible_id(store, client):
    """Verify ids before a bad one are deleted and the rest are not."""
    with pytest.raises(ConversionError):
        await store.delete(["1", "x", "3"])
    assert [call["ids"] for call in client.calls_to("delete")] == [[1]]


async def test_delete_varchar_ids_are_verbatim(varchar_store, client):
    """Verify varchar keys are passed through unchanged."""
    await varchar_store.delete(["a", "b"])
    assert [call["ids"] for call in client.calls_to("delete")] == [["a"], ["b"]]


async def test_delete_backend_failure(store, client):
    """Verify client failures surface as BackendError with a stable message."""
    client.fail("delete", ConnectionError("connection refused"))
    with pytest.raises(BackendError) as exc_info:
        await store.delete("1")
    err = exc_info.value
    assert err.message == "failed to delete vector entries"
    assert err.code == "TRANSIENT_NETWORK"
    assert isinstance(err.cause, ConnectionError)
