"""
Table metadata -- strongly-typed view of a JSON-stat 2 dataset header.

A table is an ordered list of dimensions.  Each dimension has an ordered list
of value codes (the API's category index) and an optional label per code.
``size[i]`` is the number of value codes of dimension ``i``; the product of
``size`` is the length of the table's flat value array.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from math import prod
from typing import Any

from scb_query.catalog.models import JsonStatDataset, JsonStatDimension


@dataclass(frozen=True)
class DimensionDefinition:
    code: str
    label: str
    value_codes: tuple[str, ...]
    value_labels: dict[str, str] = field(default_factory=dict)
    elimination: bool = False

    @property
    def size(self) -> int:
        return len(self.value_codes)

    def has_value(self, code: str) -> bool:
        return code in self.value_codes

    def value_label(self, code: str) -> str:
        return self.value_labels.get(code) or code

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "label": self.label,
            "values_count": self.size,
            "values": [{"code": c, "label": self.value_label(c)} for c in self.value_codes],
        }


@dataclass(frozen=True)
class TableMetadata:
    table_id: str
    label: str
    dimensions: tuple[DimensionDefinition, ...]
    size: tuple[int, ...]
    source: str | None = None
    updated: str | None = None
    notes: tuple[str, ...] = ()
    contacts: tuple[str, ...] = ()

    # ── Convenience look-ups ─────────────────────────

    def dimension(self, code: str) -> DimensionDefinition | None:
        for d in self.dimensions:
            if d.code == code:
                return d
        return None

    def dimension_codes(self) -> list[str]:
        return [d.code for d in self.dimensions]

    @property
    def total_cells(self) -> int:
        return prod(self.size) if self.size else 0

    def is_consistent(self) -> bool:
        """True when ``size`` agrees with every dimension's value count."""
        return len(self.size) == len(self.dimensions) and all(
            s == d.size for s, d in zip(self.size, self.dimensions)
        )


# ── Parsing ──────────────────────────────────────────────

def _ordered_codes(dim: JsonStatDimension) -> tuple[str, ...]:
    index = dim.category.index
    if isinstance(index, list):
        return tuple(index)
    return tuple(code for code, _ in sorted(index.items(), key=lambda kv: kv[1]))


def _parse_dimension(code: str, raw: JsonStatDimension) -> DimensionDefinition:
    return DimensionDefinition(
        code=code,
        label=raw.label,
        value_codes=_ordered_codes(raw),
        value_labels=dict(raw.category.label or {}),
        elimination=bool(raw.extension and raw.extension.elimination),
    )


def _format_contact(name: str | None, mail: str | None, phone: str | None) -> str:
    text = name or "N/A"
    if mail:
        text += f" ({mail})"
    if phone:
        text += f" - {phone}"
    return text


def parse_table_metadata(dataset: JsonStatDataset, table_id: str | None = None) -> TableMetadata:
    """Build a :class:`TableMetadata` from a parsed JSON-stat 2 dataset.

    Dimension order follows the dataset's ``id`` list (falling back to the
    order of the ``dimension`` object).  A missing ``size`` is derived from
    the value counts.
    """
    order = [c for c in dataset.id if c in dataset.dimension] or list(dataset.dimension)
    dimensions = tuple(_parse_dimension(code, dataset.dimension[code]) for code in order)
    size = tuple(dataset.size) if dataset.size else tuple(d.size for d in dimensions)

    notes: tuple[str, ...] = ()
    contacts: tuple[str, ...] = ()
    if dataset.extension:
        notes = tuple(n.text for n in dataset.extension.notes)
        contacts = tuple(_format_contact(c.name, c.mail, c.phone) for c in dataset.extension.contact)

    if table_id is None:
        px = dataset.extension.px if dataset.extension and dataset.extension.px else {}
        table_id = str(px.get("tableid", ""))

    return TableMetadata(
        table_id=table_id,
        label=dataset.label,
        dimensions=dimensions,
        size=size,
        source=dataset.source,
        updated=dataset.updated,
        notes=notes,
        contacts=contacts,
    )
