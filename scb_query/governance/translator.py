"""
Name and value translation -- informal selections to PxWebApi vocabulary.

Both translators are total (they never raise) and idempotent: translating an
already-canonical name or value returns it unchanged.  Anything they do not
recognise is passed through so the validator can report it.
"""
from __future__ import annotations

import re
from typing import Iterable

from scb_query.governance.selection import is_expression
from scb_query.governance.vocabulary_loader import load_vocabulary, Vocabulary

# ── Value format normalisers ────────────────────────────

_YEAR_RE = re.compile(r"^\d{4}$")
_YEAR_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")
_YEAR_QUARTER_RE = re.compile(r"^(\d{4})-?[Qq]([1-4])$")


def _normalise_period(value: str) -> str:
    """``2024`` stays, ``2024-03`` -> ``2024M03``, ``2024-Q1`` -> ``2024K1``."""
    if _YEAR_RE.match(value):
        return value
    m = _YEAR_MONTH_RE.match(value)
    if m:
        return f"{m.group(1)}M{m.group(2)}"
    m = _YEAR_QUARTER_RE.match(value)
    if m:
        return f"{m.group(1)}K{m.group(2)}"
    return value


_FORMATTERS = {
    "period": _normalise_period,
}


class NameTranslator:
    """Maps informal variable names (Swedish, English, any case) to dimension codes."""

    def __init__(self, vocabulary: Vocabulary | None = None):
        self._mapping = (vocabulary or load_vocabulary()).variables

    def translate(self, user_key: str) -> str:
        key = str(user_key)
        if key in self._mapping:
            return self._mapping[key]
        return self._mapping.get(key.lower(), key)


class ValueTranslator:
    """Maps informal value tokens to value codes for a given dimension code."""

    def __init__(self, vocabulary: Vocabulary | None = None):
        self._vocabulary = vocabulary or load_vocabulary()

    def translate(self, values: Iterable[str], variable_code: str) -> list[str]:
        return [self.translate_one(str(v), variable_code) for v in values]

    def translate_one(self, value: str, variable_code: str) -> str:
        if is_expression(value):
            return value

        lowered = value.lower()
        specific = self._vocabulary.value_synonyms(variable_code)
        if lowered in specific:
            return specific[lowered]

        general = self._vocabulary.general_value_synonyms()
        if lowered in general:
            return general[lowered]

        fmt = self._vocabulary.value_format(variable_code)
        formatter = _FORMATTERS.get(fmt) if fmt else None
        if formatter is not None:
            return formatter(value)
        return value
