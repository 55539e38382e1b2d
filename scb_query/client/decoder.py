"""
Dataset decoder -- JSON-stat 2 flat value arrays to labelled records.

The API returns the Cartesian product of all selected dimension values as
one flat array.  The array is row-major: the **last** dimension varies
fastest, so flat index ``f`` decomposes into per-dimension coordinates by
repeated ``divmod`` from the last dimension to the first.

Each non-null value becomes one record::

    {"region_code": "0180", "region_name": "Stockholm",
     "year_code": "2024", "year_name": "2024", "value": 40}

Records keep flat-array order.  Decoding is pure: no shared state.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from math import prod
from typing import Any, Sequence

from scb_query.catalog.metadata import DimensionDefinition, TableMetadata, parse_table_metadata
from scb_query.catalog.models import JsonStatDataset
from scb_query.core.errors import MalformedPayload
from scb_query.governance.vocabulary_loader import load_vocabulary, Vocabulary

# Index of the dimension whose coordinate changes between adjacent flat entries.
FASTEST_VARYING_AXIS = -1

Number = int | float
Record = dict[str, Any]


# ── Mixed-radix index arithmetic ────────────────────────


def _axis_order(sizes: Sequence[int]) -> list[int]:
    """Dimension indices from fastest- to slowest-varying."""
    n = len(sizes)
    fastest = FASTEST_VARYING_AXIS % n
    return [(fastest - k) % n for k in range(n)]


def decode_index(flat_index: int, sizes: Sequence[int]) -> tuple[int, ...]:
    """Split *flat_index* into one coordinate per dimension."""
    if not sizes:
        raise ValueError("sizes must not be empty")
    if not 0 <= flat_index < prod(sizes):
        raise ValueError(f"flat index {flat_index} out of range for sizes {list(sizes)}")
    coords = [0] * len(sizes)
    temp = flat_index
    for i in _axis_order(sizes):
        temp, coords[i] = divmod(temp, sizes[i])
    return tuple(coords)


def encode_index(coords: Sequence[int], sizes: Sequence[int]) -> int:
    """Inverse of :func:`decode_index`."""
    if len(coords) != len(sizes):
        raise ValueError(f"expected {len(sizes)} coordinates, got {len(coords)}")
    flat = 0
    for i in reversed(_axis_order(sizes)):
        if not 0 <= coords[i] < sizes[i]:
            raise ValueError(f"coordinate {coords[i]} out of range for dimension {i} (size {sizes[i]})")
        flat = flat * sizes[i] + coords[i]
    return flat


# ── Payload ─────────────────────────────────────────────


@dataclass(frozen=True)
class FlatValuePayload:
    """Dimensions plus the flat value array.

    ``values`` is None when the dataset carried no ``value`` member at all,
    which is distinct from an empty array.
    """
    dimensions: tuple[DimensionDefinition, ...]
    values: tuple[Number | None, ...] | None

    @property
    def sizes(self) -> tuple[int, ...]:
        return tuple(d.size for d in self.dimensions)

    @classmethod
    def from_dataset(cls, dataset: JsonStatDataset) -> "FlatValuePayload":
        metadata = parse_table_metadata(dataset)
        if not metadata.is_consistent():
            raise MalformedPayload(
                f"Dataset size {list(metadata.size)} does not match dimension value counts "
                f"{[d.size for d in metadata.dimensions]}"
            )
        values = None if dataset.value is None else tuple(dataset.value)
        return cls(dimensions=metadata.dimensions, values=values)


# ── Decoder ─────────────────────────────────────────────


class DatasetDecoder:
    """Turns a :class:`FlatValuePayload` into a list of records."""

    def __init__(self, vocabulary: Vocabulary | None = None):
        self._vocabulary = vocabulary or load_vocabulary()

    def base_name(self, dimension_code: str) -> str:
        return self._vocabulary.base_name(dimension_code)

    def decode(self, payload: FlatValuePayload) -> list[Record]:
        if payload.values is None:
            return []
        sizes = payload.sizes
        expected = prod(sizes) if sizes else 0
        if len(payload.values) != expected:
            raise MalformedPayload(
                f"Value array has {len(payload.values)} entries but dimension sizes "
                f"{list(sizes)} require {expected}"
            )

        names = [self.base_name(d.code) for d in payload.dimensions]
        records: list[Record] = []
        for flat_index, value in enumerate(payload.values):
            if value is None:
                continue
            record: Record = {}
            for dim, base, coord in zip(payload.dimensions, names, decode_index(flat_index, sizes)):
                code = dim.value_codes[coord]
                record[f"{base}_code"] = code
                record[f"{base}_name"] = dim.value_label(code)
            record["value"] = value
            records.append(record)
        return records


# ── Structured result ───────────────────────────────────


@dataclass
class DecodedDataset:
    """Records plus the query echo, table metadata and a summary."""
    table_id: str
    selection: dict[str, list[str]]
    records: list[Record]
    metadata: TableMetadata
    requested_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def summary(self) -> dict[str, Any]:
        return {
            "total_records": len(self.records),
            "non_null_records": sum(1 for r in self.records if r.get("value") is not None),
            "total_value": sum(r["value"] for r in self.records if r.get("value") is not None),
            "has_data": bool(self.records),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": {
                "selection": self.selection,
                "table_id": self.table_id,
                "requested_at": self.requested_at,
            },
            "data": self.records,
            "metadata": {
                "source": self.metadata.source or "Statistics Sweden",
                "updated": self.metadata.updated,
                "table_name": self.metadata.label,
                "data_shape": list(self.metadata.size),
                "dimensions": [
                    {"name": d.code, "label": d.label, "values_count": d.size}
                    for d in self.metadata.dimensions
                ],
            },
            "summary": self.summary,
        }
