# SPDX-License-Identifier: Apache-2.0
"""
Vector store - read-path match building (Milvus row/hit -> VectorMatch).
"""

import pytest
from pymilvus.client.search_result import Hit

from vectorstore_sdk.vector.milvus_mapping import MatchBuilder, default_for
from vectorstore_sdk.vector.vector_base import (
    Chunk,
    ConversionError,
    FieldKind,
    StoreConfiguration,
)

pytestmark = pytest.mark.asyncio


async def test_match_missing_fields_get_kind_defaults():
    """Verify requested fields the backend omitted get their kind's default."""
    cfg = StoreConfiguration(
        collection_name="docs",
        additional_fields={
            "title": FieldKind.TEXT,
            "size": FieldKind.NUMBER,
            "pages": FieldKind.INTEGER,
            "draft": FieldKind.BOOLEAN,
            "tags": FieldKind.ARRAY,
            "raw": FieldKind.ANY,
        },
    )
    match = MatchBuilder(cfg).from_backend_row(5, {}, 0.5)
    assert match.id == "5"
    assert match.chunk == Chunk(type="", content="")
    assert match.embedding == []
    assert match.metadata == {
        "title": "",
        "size": 0.0,
        "pages": 0,
        "draft": False,
        "tags": [],
        "raw": None,
    }


async def test_match_default_values_per_kind():
    """Verify the documented default of every field kind."""
    assert default_for(FieldKind.TEXT) == ""
    assert default_for(FieldKind.FLOAT_VECTOR) == []
    assert default_for(FieldKind.BOOLEAN) is False
    assert default_for(FieldKind.ANY) is None


async def test_match_score_is_passed_through_verbatim(config):
    """Verify backend scores are not normalized; None becomes 0.0."""
    builder = MatchBuilder(config)
    assert builder.from_backend_row(1, {}, 0.123).similarity_score == 0.123
    assert builder.from_backend_row(1, {}, 17).similarity_score == 17.0
    assert builder.from_backend_row(1, {}, None).similarity_score == 0.0


async def test_match_search_hit_with_entity(config):
    """Verify dict-shaped search hits are read from their entity."""
    hit = {
        "id": 7,
        "distance": 0.91,
        "entity": {"type": "text", "content": "hello", "fileName": "a.txt"},
    }
    match = MatchBuilder(config).from_search_hit(hit)
    assert match.id == "7"
    assert match.similarity_score == 0.91
    assert match.chunk == Chunk(type="text", content="hello")
    assert match.metadata == {"fileName": "a.txt"}


async def test_match_search_hit_attribute_style(config):
    """Verify attribute-style hits (id/distance/fields) are supported."""

    class Hit:
        id = 3
        distance = 0.2
        fields = {"type": "text", "content": "c"}

    match = MatchBuilder(config).from_search_hit(Hit())
    assert match.id == "3"
    assert match.chunk.content == "c"
    assert match.metadata == {"fileName": ""}


async def test_match_query_row_uses_primary_key_and_zero_score(config):
    """Verify filter-only rows take their id from the key field and score 0.0."""
    row = {"id": 11, "type": "text", "content": "x", "fileName": "b.txt"}
    match = MatchBuilder(config).from_query_row(row)
    assert match.id == "11"
    assert match.similarity_score == 0.0
    assert match.metadata == {"fileName": "b.txt"}


async def test_match_vectors_returned_when_enabled():
    """Verify the embedding is read only when return_vectors is set."""
    cfg = StoreConfiguration(collection_name="docs", return_vectors=True)
    match = MatchBuilder(cfg).from_backend_row(1, {"vector": [1, 2]}, 0.0)
    assert match.embedding == [1.0, 2.0]
    assert "vector" not in match.metadata


async def test_match_boolean_strings_are_parsed():
    """Verify boolean fields accept textual values."""
    assert MatchBuilder.coerce("draft", "true", FieldKind.BOOLEAN) is True
    assert MatchBuilder.coerce("draft", "False", FieldKind.BOOLEAN) is False


async def test_match_uncoercible_value_raises_conversion_error():
    """Verify a present but wrongly typed value is a conversion error."""
    with pytest.raises(ConversionError) as exc_info:
        MatchBuilder.coerce("size", "big", FieldKind.NUMBER)
    assert exc_info.value.details == {"field": "size"}


async def test_match_explicit_requested_fields_override_schema(config):
    """Verify callers may read rows against their own field schema."""
    match = MatchBuilder(config).from_backend_row(
        1,
        {"pages": "12"},
        0.0,
        requested_fields={"pages": FieldKind.INTEGER},
    )
    assert match.metadata == {"pages": 12}
    assert match.chunk == Chunk(type="", content="")


async def test_match_pymilvus_hit_keyed_by_primary_key_name(varchar_config):
    """Verify ids are read from hits keyed by a primary-key field other than 'id'."""
    hit = Hit(
        {"pk": "doc-7", "distance": 0.5, "entity": {"type": "text", "text": "body"}},
        pk_name="pk",
    )
    match = MatchBuilder(varchar_config).from_search_hit(hit)
    assert match.id == "doc-7"
    assert match.similarity_score == 0.5
    assert match.chunk == Chunk(type="text", content="body")
    assert "pk" not in match.metadata


async def test_match_id_from_entity_when_hit_has_no_key(config):
    """Verify the projected primary key inside the entity is the last fallback."""
    match = MatchBuilder(config).from_search_hit({"distance": 0.1, "entity": {"id": 4}})
    assert match.id == "4"
