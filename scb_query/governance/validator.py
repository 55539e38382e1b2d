"""
Validates a caller's selection against a table's live metadata.

Steps performed:
  1. Translate variable names, then values, into the API vocabulary
  2. Metadata must list at least one dimension
  3. Every table dimension must be present (the API rejects partial selections)
  4. Every selected variable must be a table dimension
  5. Every concrete value must be one of that dimension's value codes
     (``*``, ``TOP(..)``, ``BOTTOM(..)`` and ``RANGE(..)`` are not inspected)

Problems are returned as data in a ``ValidationResult``; ``validate`` never
raises.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping

from scb_query.catalog.metadata import TableMetadata
from scb_query.core.errors import MetadataUnavailable, QuotaExceeded
from scb_query.core.logging import get_logger
from scb_query.governance.selection import Concrete, Selection, parse_token
from scb_query.governance.suggestions import similar_values, similar_variables
from scb_query.governance.translator import NameTranslator, ValueTranslator

logger = get_logger(__name__)

RawSelection = Mapping[str, Iterable[str] | str]
MetadataSource = Callable[[str, str], TableMetadata]


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of one validation call.  Never mutated after construction."""
    is_valid: bool
    errors: tuple[str, ...] = ()
    suggestions: tuple[str, ...] = ()
    resolved_selection: Selection | None = None

    @classmethod
    def failure(cls, error: str, suggestion: str, resolved: Selection | None = None) -> "ValidationResult":
        return cls(is_valid=False, errors=(error,), suggestions=(suggestion,), resolved_selection=resolved)

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "errors": list(self.errors),
            "suggestions": list(self.suggestions),
            "resolved_selection": self.resolved_selection.to_dict() if self.resolved_selection else None,
        }


# ── Translation ─────────────────────────────────────────


def resolve_selection(
    selection: RawSelection,
    names: NameTranslator,
    values: ValueTranslator,
) -> Selection:
    """Translate keys, then each value list under its translated key.

    Keys that translate to the same code have their values merged in order.
    """
    items = []
    for key, raw_values in selection.items():
        code = names.translate(key)
        if isinstance(raw_values, str):
            raw_values = [raw_values]
        translated = values.translate(raw_values, code)
        items.append((code, [parse_token(v) for v in translated]))
    return Selection(items)


# ── Checks ──────────────────────────────────────────────


def check_selection(
    table_id: str,
    metadata: TableMetadata,
    resolved: Selection,
    max_value_suggestions: int = 3,
) -> ValidationResult:
    """Validate an already-translated selection against *metadata*."""
    if not metadata.dimensions:
        return ValidationResult.failure(
            "Table metadata not available for validation",
            "Try get_table_info first",
            resolved,
        )

    errors: list[str] = []
    suggestions: list[str] = []
    available = metadata.dimension_codes()

    missing = [code for code in available if code not in resolved]
    if missing:
        errors.append(f"Missing mandatory variables: {', '.join(missing)}")
        suggestions.append(
            "Tables require all dimensions to be specified. "
            f"Add these variables to your selection: {', '.join(missing)}"
        )
        for code in missing:
            suggestions.append(f'Use "*" to select every value, e.g. {{"{code}": ["*"]}}')

    for var_code, tokens in resolved.items():
        dim = metadata.dimension(var_code)
        if dim is None:
            errors.append(f'Variable "{var_code}" not found in table')
            similar = similar_variables(var_code, metadata)
            if similar:
                quoted = ", ".join('"' + s + '"' for s in similar)
                suggestions.append(f"Did you mean: {quoted}?")
            else:
                suggestions.append(f"Available variables: {', '.join(available)}")
            continue

        if not tokens:
            errors.append(f'Variable "{var_code}" has an empty value list')
            suggestions.append(f'Use "*" to select every value, e.g. {{"{var_code}": ["*"]}}')
            continue

        for token in tokens:
            if not isinstance(token, Concrete):
                continue
            if dim.has_value(token.code):
                continue
            errors.append(f'Value "{token.code}" not found for variable "{var_code}"')
            close = similar_values(token.code, dim, limit=max_value_suggestions)
            if close:
                suggestions.append(f'For "{var_code}", did you mean: {", ".join(close)}?')
            else:
                suggestions.append(
                    f'Use get_table_variables with table_id="{table_id}" and '
                    f'variable_name="{var_code}" to see all values'
                )

    return ValidationResult(
        is_valid=not errors,
        errors=tuple(errors),
        suggestions=tuple(suggestions),
        resolved_selection=resolved,
    )


# ── Validator ───────────────────────────────────────────


class SelectionValidator:
    """Translates and validates selections, fetching metadata through *metadata_source*.

    Parameters
    ----------
    metadata_source : callable
        ``(table_id, language) -> TableMetadata``.  Expected to be quota-gated
        by the caller.
    names, values : translators, optional
        Default to translators over the bundled vocabulary.
    max_value_suggestions : int
        Cap on "did you mean" value codes per unknown value.
    """

    def __init__(
        self,
        metadata_source: MetadataSource,
        names: NameTranslator | None = None,
        values: ValueTranslator | None = None,
        max_value_suggestions: int = 3,
    ):
        self._metadata_source = metadata_source
        self._names = names or NameTranslator()
        self._values = values or ValueTranslator()
        self._max_value_suggestions = max_value_suggestions

    def resolve(self, selection: RawSelection) -> Selection:
        return resolve_selection(selection, self._names, self._values)

    def validate(self, table_id: str, selection: RawSelection, language: str = "en") -> ValidationResult:
        resolved: Selection | None = None
        try:
            resolved = self.resolve(selection)
            metadata = self._metadata_source(table_id, language)
            result = check_selection(table_id, metadata, resolved, self._max_value_suggestions)
        except QuotaExceeded as exc:
            return ValidationResult.failure(
                f"Validation failed: {exc}",
                f"Wait {exc.retry_after_seconds} seconds and try again",
                resolved,
            )
        except MetadataUnavailable as exc:
            return ValidationResult.failure(
                f"Validation failed: {exc}",
                "Check that the table ID is correct with get_table_info, then retry",
                resolved,
            )
        except Exception as exc:  # noqa: BLE001 -- validation reports, never raises
            logger.exception("Unexpected error while validating selection for %s", table_id)
            return ValidationResult.failure(
                f"Validation failed: {exc}",
                "Try checking if the table ID is correct with get_table_info",
                resolved,
            )

        logger.info("Validated selection for %s: valid=%s errors=%d",
                    table_id, result.is_valid, len(result.errors))
        return result
