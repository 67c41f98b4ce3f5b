# vectorstore_sdk/vector/milvus_mapping.py
# SPDX-License-Identifier: Apache-2.0
"""
Record mapping between the generic model and Milvus rows.

Write path (`EntryMapper`)
--------------------------
A `VectorEntry` becomes one flat Milvus row:

    {
        <primary_key_field>: 42,              # parsed from entry.id for int64 keys
        <vector_field>: [0.1, 0.2, ...],
        <metadata keys...>,                   # pass-through variant only
        "type": entry.chunk.type,
        <chunk_field_name>: entry.chunk.content,
    }

Metadata keys land next to the schema fields (Milvus dynamic fields), which is
what makes them filterable by name. Chunk fields are written last and always
win over same-named metadata. Timestamps are stored as ISO 8601 strings.

Read path (`MatchBuilder`)
--------------------------
Result rows are read against an explicit schema (field name -> `FieldKind`).
A requested field that the backend did not return gets the kind's default
instead of failing, since what comes back depends on the collection schema
and index configuration. Scores are passed through untouched.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Sequence

from vectorstore_sdk.vector.filter_expression import canonical_timestamp
from vectorstore_sdk.vector.vector_base import (
    Chunk,
    ConversionError,
    FieldKind,
    StoreConfiguration,
    VectorEntry,
    VectorMatch,
)

logger = logging.getLogger(__name__)

INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1

_KIND_DEFAULTS: Dict[FieldKind, Any] = {
    FieldKind.TEXT: "",
    FieldKind.NUMBER: 0.0,
    FieldKind.INTEGER: 0,
    FieldKind.BOOLEAN: False,
    FieldKind.ANY: None,
}


def default_for(kind: FieldKind) -> Any:
    """Value substituted for a requested field the backend did not return."""
    if kind in (FieldKind.FLOAT_VECTOR, FieldKind.ARRAY):
        return []
    return _KIND_DEFAULTS[kind]


def _safe_get(obj: Any, key: str, default: Any = None) -> Any:
    """Support both dict-style and attribute-style access."""
    if isinstance(obj, Mapping):
        return obj.get(key, default)
    return getattr(obj, key, default)


def _coerce_metadata_value(value: Any) -> Any:
    if isinstance(value, date):
        return canonical_timestamp(value)
    if isinstance(value, (list, tuple)):
        return [_coerce_metadata_value(v) for v in value]
    return value


class EntryMapper:
    """Converts `VectorEntry` records into Milvus rows for one configuration."""

    def __init__(self, config: StoreConfiguration) -> None:
        self._config = config

    def to_primary_key(self, raw_id: Any) -> Any:
        """
        Convert an identifier into the backend key type.

        int64 keys accept decimal strings (surrounding whitespace tolerated)
        and must fit in a signed 64-bit integer.

        Raises:
            ConversionError: the id cannot be represented as a key.
        """
        if self._config.primary_key_type == "varchar":
            if not isinstance(raw_id, str) or not raw_id:
                raise ConversionError(
                    "varchar primary key must be a non-empty string",
                    details={"id": repr(raw_id)},
                )
            return raw_id

        if isinstance(raw_id, bool):
            raise ConversionError("boolean is not a valid int64 primary key", details={"id": repr(raw_id)})
        if isinstance(raw_id, int):
            key = raw_id
        else:
            try:
                key = int(str(raw_id).strip(), 10)
            except (TypeError, ValueError) as exc:
                raise ConversionError(
                    f"cannot convert id {raw_id!r} to an int64 primary key",
                    details={"id": repr(raw_id)},
                ) from exc
        if not INT64_MIN <= key <= INT64_MAX:
            raise ConversionError(
                f"id {raw_id!r} is out of int64 range",
                details={"id": repr(raw_id)},
            )
        return key

    @staticmethod
    def to_vector(embedding: Sequence[Any]) -> List[float]:
        """Copy an embedding into a list of floats; dimensionality is left to the backend."""
        if embedding is None or isinstance(embedding, (str, bytes)):
            raise ConversionError("embedding must be a sequence of numbers")
        try:
            return [float(x) for x in embedding]
        except (TypeError, ValueError) as exc:
            raise ConversionError(f"embedding contains a non-numeric value: {exc}") from exc

    def properties(self, entry: VectorEntry) -> Dict[str, Any]:
        """Flattened property map: coerced metadata (if enabled), then chunk fields."""
        cfg = self._config
        props: Dict[str, Any] = {}
        if cfg.store_metadata and entry.metadata:
            if not isinstance(entry.metadata, Mapping):
                raise ConversionError(
                    "metadata must be a mapping",
                    details={"id": str(entry.id)},
                )
            for key, value in entry.metadata.items():
                if not isinstance(key, str):
                    raise ConversionError(
                        f"metadata key {key!r} is not a string",
                        details={"id": str(entry.id)},
                    )
                if key in (cfg.primary_key_field, cfg.vector_field):
                    logger.debug("dropping metadata key %r that shadows a schema field", key)
                    continue
                props[key] = _coerce_metadata_value(value)

        props[cfg.type_field_name] = entry.chunk.type
        props[str(cfg.chunk_field_name)] = entry.chunk.content
        return props

    def to_backend_record(self, entry: VectorEntry) -> Dict[str, Any]:
        """
        Build the Milvus row for one entry.

        Raises:
            ConversionError: id, embedding or metadata cannot be coerced.
        """
        cfg = self._config
        row: Dict[str, Any] = {
            cfg.primary_key_field: self.to_primary_key(entry.id),
            cfg.vector_field: self.to_vector(entry.embedding),
        }
        row.update(self.properties(entry))
        return row


class MatchBuilder:
    """Builds `VectorMatch` results from Milvus rows and hits for one configuration."""

    def __init__(self, config: StoreConfiguration) -> None:
        self._config = config
        self._schema = config.field_schema()

    @staticmethod
    def coerce(name: str, value: Any, kind: FieldKind) -> Any:
        """Coerce a returned value to its expected kind; None means absent."""
        if value is None:
            return default_for(kind)
        try:
            if kind is FieldKind.TEXT:
                return value if isinstance(value, str) else str(value)
            if kind is FieldKind.FLOAT_VECTOR:
                return [float(x) for x in value]
            if kind is FieldKind.ARRAY:
                return list(value)
            if kind is FieldKind.NUMBER:
                return float(value)
            if kind is FieldKind.INTEGER:
                return int(value)
            if kind is FieldKind.BOOLEAN:
                if isinstance(value, str):
                    return value.strip().lower() in ("true", "1", "yes")
                return bool(value)
        except (TypeError, ValueError) as exc:
            raise ConversionError(
                f"field '{name}' cannot be read as {kind.value}",
                details={"field": name},
            ) from exc
        return value

    def from_backend_row(
        self,
        id: Any,
        fields: Optional[Mapping[str, Any]],
        score: Any,
        requested_fields: Optional[Mapping[str, FieldKind]] = None,
    ) -> VectorMatch:
        """
        Build a match from an id, the returned fields and the backend score.

        Every requested field is looked up in `fields`; missing ones get their
        kind's default. `requested_fields` defaults to the configured schema.
        """
        cfg = self._config
        schema = self._schema if requested_fields is None else dict(requested_fields)
        fields = fields or {}

        values: Dict[str, Any] = {
            name: self.coerce(name, fields.get(name), kind) for name, kind in schema.items()
        }

        type_name = cfg.type_field_name
        content_name = str(cfg.chunk_field_name)
        chunk = Chunk(
            type=str(values.pop(type_name, "") or ""),
            content=str(values.pop(content_name, "") or ""),
        )
        embedding = values.pop(cfg.vector_field, [])
        if not isinstance(embedding, list):
            embedding = []

        return VectorMatch(
            id=str(id),
            embedding=embedding,
            chunk=chunk,
            similarity_score=float(score) if score is not None else 0.0,
            metadata=values,
        )

    def from_search_hit(self, hit: Any) -> VectorMatch:
        """
        Build a match from one similarity-search hit.

        pymilvus returns hits keyed by the primary-key field name,
        `{<pk>: ..., "distance": ..., "entity": {...}}`; older clients return
        attribute-style hits with `id`, `distance` and `fields`.
        """
        pk = self._config.primary_key_field
        entity = _safe_get(hit, "entity", None)
        if not isinstance(entity, Mapping):
            entity = _safe_get(hit, "fields", None)
        if not isinstance(entity, Mapping):
            entity = hit if isinstance(hit, Mapping) else {}

        hit_id = hit.get(pk) if isinstance(hit, Mapping) else None
        if hit_id is None:
            hit_id = _safe_get(hit, "id", None)
        if hit_id is None:
            hit_id = entity.get(pk)
        return self.from_backend_row(hit_id, entity, _safe_get(hit, "distance", None))

    def from_query_row(self, row: Mapping[str, Any]) -> VectorMatch:
        """
        Build a match from a filter-only query row.

        Query rows carry no ranking; the score is 0.0 unless the row has one.
        """
        pk = self._config.primary_key_field
        score = row.get("distance")
        if score is None:
            score = row.get("score")
        return self.from_backend_row(row.get(pk), row, score)


__all__ = [
    "EntryMapper",
    "MatchBuilder",
    "default_for",
]
