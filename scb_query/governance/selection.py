"""
Selection -- typed representation of a caller's variable/value choice.

A selection maps a variable code to an ordered list of value tokens.  Each
token is parsed once into one of:

  Concrete(code)      a value code that must exist in the dimension
  Wildcard()          ``*`` -- every value
  TopN(n, offset)     ``TOP(n)`` / ``TOP(n, offset)``
  BottomN(n, offset)  ``BOTTOM(n)`` / ``BOTTOM(n, offset)``
  Range(start, end)   ``RANGE(a,b)``
  Expression(text)    any other ``TOP(``/``BOTTOM(``/``RANGE(`` form

Expressions are evaluated by the API; validation does not look inside them.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Mapping, Union

WILDCARD = "*"
EXPRESSION_PREFIXES = ("TOP(", "BOTTOM(", "RANGE(")

_TOP_RE = re.compile(r"^TOP\(\s*(\d+)\s*(?:,\s*(\d+)\s*)?\)$")
_BOTTOM_RE = re.compile(r"^BOTTOM\(\s*(\d+)\s*(?:,\s*(\d+)\s*)?\)$")
_RANGE_RE = re.compile(r"^RANGE\(\s*([^,()]+?)\s*,\s*([^,()]+?)\s*\)$")


def is_expression(value: str) -> bool:
    """True for ``*`` and the ``TOP(``/``BOTTOM(``/``RANGE(`` forms."""
    return value == WILDCARD or value.startswith(EXPRESSION_PREFIXES)


# ── Token types ─────────────────────────────────────────


@dataclass(frozen=True)
class Concrete:
    code: str

    def to_wire(self) -> str:
        return self.code


@dataclass(frozen=True)
class Wildcard:
    def to_wire(self) -> str:
        return WILDCARD


@dataclass(frozen=True)
class TopN:
    n: int
    offset: int | None = None

    def to_wire(self) -> str:
        return f"TOP({self.n})" if self.offset is None else f"TOP({self.n},{self.offset})"


@dataclass(frozen=True)
class BottomN:
    n: int
    offset: int | None = None

    def to_wire(self) -> str:
        return f"BOTTOM({self.n})" if self.offset is None else f"BOTTOM({self.n},{self.offset})"


@dataclass(frozen=True)
class Range:
    start: str
    end: str

    def to_wire(self) -> str:
        return f"RANGE({self.start},{self.end})"


@dataclass(frozen=True)
class Expression:
    text: str

    def to_wire(self) -> str:
        return self.text


ValueToken = Union[Concrete, Wildcard, TopN, BottomN, Range, Expression]


def parse_token(value: str) -> ValueToken:
    value = str(value)
    if value == WILDCARD:
        return Wildcard()
    m = _TOP_RE.match(value)
    if m:
        return TopN(int(m.group(1)), int(m.group(2)) if m.group(2) else None)
    m = _BOTTOM_RE.match(value)
    if m:
        return BottomN(int(m.group(1)), int(m.group(2)) if m.group(2) else None)
    m = _RANGE_RE.match(value)
    if m:
        return Range(m.group(1), m.group(2))
    if value.startswith(EXPRESSION_PREFIXES):
        return Expression(value)
    return Concrete(value)


# ── Selection ───────────────────────────────────────────


class Selection:
    """Ordered mapping of variable code -> parsed value tokens."""

    def __init__(self, items: Iterable[tuple[str, list[ValueToken]]] = ()):
        self._items: dict[str, list[ValueToken]] = {}
        for code, tokens in items:
            self._items.setdefault(code, [])
            for token in tokens:
                if token not in self._items[code]:
                    self._items[code].append(token)

    @classmethod
    def parse(cls, raw: Mapping[str, Iterable[str] | str]) -> "Selection":
        """Build from ``{"Region": ["1484"], ...}``; a bare string is one value."""
        items = []
        for code, values in raw.items():
            if isinstance(values, str):
                values = [values]
            items.append((str(code), [parse_token(v) for v in values]))
        return cls(items)

    def __contains__(self, code: object) -> bool:
        return code in self._items

    def __iter__(self):
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __getitem__(self, code: str) -> list[ValueToken]:
        return list(self._items[code])

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Selection):
            return NotImplemented
        return self._items == other._items

    def __repr__(self) -> str:
        return f"Selection({self.to_dict()!r})"

    def items(self):
        return [(code, list(tokens)) for code, tokens in self._items.items()]

    def codes(self) -> list[str]:
        return list(self._items)

    def to_dict(self) -> dict[str, list[str]]:
        """Plain ``{code: [wire values]}`` mapping."""
        return {code: [t.to_wire() for t in tokens] for code, tokens in self._items.items()}

    def to_request_body(self) -> dict[str, list[dict[str, object]]]:
        """PxWebApi POST body: ``{"selection": [{"variableCode", "valueCodes"}]}``."""
        return {
            "selection": [
                {"variableCode": code, "valueCodes": [t.to_wire() for t in tokens]}
                for code, tokens in self._items.items()
            ]
        }
