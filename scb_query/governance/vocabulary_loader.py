"""
Loads, parses, and caches the translation vocabulary YAML.

The vocabulary is the single source of truth for:
  - informal variable names and their canonical dimension codes
  - per-variable and general value synonyms
  - value format normalisers per dimension code
  - friendly record column prefixes per dimension code
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from functools import lru_cache
from typing import Any

import yaml

_VOCABULARY_PATH = Path(__file__).resolve().parent / "vocabulary.yml"

GENERAL_VALUES_KEY = "*"


@dataclass(frozen=True)
class Vocabulary:
    """Parsed translation tables."""

    version: int
    variables: dict[str, str] = field(default_factory=dict)
    values: dict[str, dict[str, str]] = field(default_factory=dict)
    formats: dict[str, str] = field(default_factory=dict)
    base_names: dict[str, str] = field(default_factory=dict)

    # ── Convenience look-ups ─────────────────────────

    def value_synonyms(self, variable_code: str) -> dict[str, str]:
        return self.values.get(variable_code, {})

    def general_value_synonyms(self) -> dict[str, str]:
        return self.values.get(GENERAL_VALUES_KEY, {})

    def value_format(self, variable_code: str) -> str | None:
        return self.formats.get(variable_code)

    def base_name(self, dimension_code: str) -> str:
        return self.base_names.get(dimension_code, dimension_code.lower())

    def canonical_codes(self) -> set[str]:
        return set(self.variables.values())


# ── Parsing ──────────────────────────────────────────────

def _str_map(raw: dict[Any, Any] | None) -> dict[str, str]:
    # YAML turns unquoted 1/2 into ints; keys and values are always codes
    return {str(k): str(v) for k, v in (raw or {}).items()}


def _parse_values(raw: dict[Any, Any] | None) -> dict[str, dict[str, str]]:
    return {
        str(variable): {k.lower(): v for k, v in _str_map(synonyms).items()}
        for variable, synonyms in (raw or {}).items()
    }


def parse_vocabulary(raw_yaml: dict[str, Any]) -> Vocabulary:
    return Vocabulary(
        version=raw_yaml.get("version", 1),
        variables=_str_map(raw_yaml.get("variables")),
        values=_parse_values(raw_yaml.get("values")),
        formats=_str_map(raw_yaml.get("formats")),
        base_names=_str_map(raw_yaml.get("base_names")),
    )


# ── Public API ───────────────────────────────────────────

@lru_cache
def load_vocabulary(path: Path | None = None) -> Vocabulary:
    """Load and cache the vocabulary from YAML (defaults to the bundled file)."""
    with open(path or _VOCABULARY_PATH, encoding="utf-8") as f:
        raw = yaml.safe_load(f)
    return parse_vocabulary(raw or {})
