"""
Query pipeline -- orchestrates admission -> metadata -> validate -> data -> decode.

Every outbound call goes through ``_dispatch``, which reserves a slot in the
usage window first.  The window is created lazily on the first call from the
server's ``/config`` (falling back to configured defaults) so constructing a
pipeline performs no I/O.

No retries happen here: one failed request surfaces as one error.
"""
from __future__ import annotations

import threading
import time
from typing import Any, Callable, TypeVar

from scb_query.catalog.metadata import DimensionDefinition, TableMetadata
from scb_query.catalog.models import ApiConfig, FolderResponse, TableSummary, TablesResponse
from scb_query.client.api_client import PxWebClient
from scb_query.client.decoder import DatasetDecoder, DecodedDataset, FlatValuePayload, Record
from scb_query.client.transport import HttpxTransport, Transport
from scb_query.core.config import Settings, get_settings
from scb_query.core.errors import (
    MetadataUnavailable,
    QuotaExceeded,
    ScbQueryError,
    SelectionInvalid,
    TransportError,
)
from scb_query.core.logging import get_logger
from scb_query.governance.suggestions import match_dimensions
from scb_query.governance.usage_window import (
    Admission,
    LIMITS_FROM_SERVER,
    LimitsResolution,
    UsageSnapshot,
    UsageWindow,
    WindowLimits,
    resolve_limits,
)
from scb_query.governance.validator import RawSelection, SelectionValidator, ValidationResult

logger = get_logger(__name__)

T = TypeVar("T")

# ── Search categories ───────────────────────────────────

_CATEGORY_KEYWORDS: dict[str, list[str]] = {
    "population": ["population", "befolkning", "demographic"],
    "labour":     ["labour", "employment", "arbete", "sysselsättning"],
    "economy":    ["gdp", "income", "ekonomi", "bnp"],
    "housing":    ["housing", "dwelling", "boende", "lägenhet"],
}


def _matches_category(table: TableSummary, category: str) -> bool:
    keywords = _CATEGORY_KEYWORDS.get(category.lower())
    if keywords is None:
        return True
    label = table.label.lower()
    if any(k in label for k in keywords):
        return True
    # population tables are recognised by their Region variable too
    variables = " ".join(table.variable_names).lower()
    return category.lower() == "population" and "region" in variables


class QueryPipeline:
    """Quota-aware, validating client for one PxWebApi instance.

    Parameters
    ----------
    client : PxWebClient, optional
        Wire client; built from *settings* over ``HttpxTransport`` if omitted.
    settings : Settings, optional
        Defaults to ``get_settings()``.
    clock, sleep : callables, optional
        Time source and sleeper, injectable for tests.
    """

    def __init__(
        self,
        client: PxWebClient | None = None,
        settings: Settings | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._settings = settings or get_settings()
        if client is None:
            transport: Transport = HttpxTransport(timeout=self._settings.request_timeout_seconds)
            client = PxWebClient(transport, self._settings.pxweb_base_url, self._settings.user_agent)
        self._client = client
        self._clock = clock
        self._sleep = sleep
        self._init_lock = threading.Lock()
        self._window: UsageWindow | None = None
        self._limits_resolution: LimitsResolution | None = None
        self._decoder = DatasetDecoder()
        self._validator = SelectionValidator(
            self._fetch_metadata,
            max_value_suggestions=self._settings.max_value_suggestions,
        )

    @classmethod
    def from_transport(cls, transport: Transport, settings: Settings | None = None, **kwargs: Any) -> "QueryPipeline":
        settings = settings or get_settings()
        client = PxWebClient(transport, settings.pxweb_base_url, settings.user_agent)
        return cls(client=client, settings=settings, **kwargs)

    # ── Usage window ────────────────────────────────────

    @property
    def limits_resolution(self) -> LimitsResolution | None:
        return self._limits_resolution

    def _default_limits(self) -> WindowLimits:
        return WindowLimits(self._settings.fallback_max_calls, self._settings.fallback_time_window)

    def _fetch_server_limits(self) -> WindowLimits:
        config = self._client.fetch_config()
        return WindowLimits(config.max_calls_per_time_window, config.time_window)

    def _ensure_window(self) -> UsageWindow:
        """Create the window on first use.  The /config lookup itself is not counted."""
        if self._window is not None:
            return self._window
        with self._init_lock:
            if self._window is None:
                resolution = resolve_limits(self._fetch_server_limits, self._default_limits())
                self._limits_resolution = resolution
                self._window = UsageWindow(resolution.limits, clock=self._clock)
                logger.info("Usage window initialised from %s: %d calls / %ss",
                            resolution.source, resolution.limits.capacity, resolution.limits.window_seconds)
        return self._window

    def _learn_limits(self, config: ApiConfig) -> None:
        """Adopt limits from a fresh /config response, warning if they changed."""
        window = self._ensure_window()
        learned = WindowLimits(config.max_calls_per_time_window, config.time_window)
        current = window.limits
        if learned != current:
            logger.warning(
                "Server rate limits (%d calls / %ss) differ from those in use (%d calls / %ss); adopting server values",
                learned.capacity, learned.window_seconds, current.capacity, current.window_seconds,
            )
            window.initialize(learned.capacity, learned.window_seconds)
        self._limits_resolution = LimitsResolution(limits=learned, source=LIMITS_FROM_SERVER)

    def check_admission(self) -> Admission:
        """Would one more call be admitted now?  Does not consume quota."""
        return self._ensure_window().admit()

    def usage_snapshot(self) -> UsageSnapshot | None:
        """Current usage, or ``None`` before the first call created the window."""
        if self._window is None:
            return None
        return self._window.snapshot()

    def _reserve(self) -> Admission:
        window = self._ensure_window()
        admission = window.reserve()
        if admission.permitted:
            return admission
        max_wait = self._settings.max_quota_wait_seconds
        if self._settings.wait_on_quota and admission.retry_after <= max_wait:
            logger.info("Quota exhausted, waiting %.1fs for the next window", admission.retry_after)
            self._sleep(admission.retry_after)
            admission = window.reserve()
            if admission.permitted:
                return admission
        raise QuotaExceeded(admission.retry_after, admission.used, admission.capacity)

    def _dispatch(self, call: Callable[[], T]) -> T:
        """Run one outbound call under a reserved window slot."""
        admission = self._reserve()
        try:
            return call()
        except TransportError as exc:
            if not exc.sent:
                self._ensure_window().release(admission.window_start)
            raise

    # ── Metadata ────────────────────────────────────────

    def _fetch_metadata(self, table_id: str, language: str) -> TableMetadata:
        try:
            return self._dispatch(lambda: self._client.fetch_table_metadata(table_id, language))
        except QuotaExceeded:
            raise
        except ScbQueryError as exc:
            raise MetadataUnavailable(table_id, str(exc)) from exc

    def get_table_info(self, table_id: str, language: str | None = None) -> TableMetadata:
        return self._fetch_metadata(table_id, language or self._settings.default_language)

    def get_table_variables(
        self,
        table_id: str,
        variable_name: str | None = None,
        language: str | None = None,
    ) -> list[DimensionDefinition]:
        """All dimensions, or those matching *variable_name* by code or label."""
        metadata = self.get_table_info(table_id, language)
        if not variable_name:
            return list(metadata.dimensions)
        return match_dimensions(variable_name, metadata.dimensions)

    # ── Validation ──────────────────────────────────────

    def validate_selection(
        self,
        table_id: str,
        selection: RawSelection,
        language: str | None = None,
    ) -> ValidationResult:
        return self._validator.validate(table_id, selection, language or self._settings.default_language)

    # ── Data ────────────────────────────────────────────

    def decode(self, payload: FlatValuePayload) -> list[Record]:
        return self._decoder.decode(payload)

    def get_table_data(
        self,
        table_id: str,
        selection: RawSelection | None = None,
        language: str | None = None,
    ) -> DecodedDataset:
        """Validate *selection* (if any), fetch the data and decode it.

        Without a selection the API's default selection is requested and
        validation is skipped.

        Raises
        ------
        SelectionInvalid
            If validation failed; carries the full ``ValidationResult``.
        QuotaExceeded, ApiRequestError, ResponseFormatError, TransportError, MalformedPayload
        """
        language = language or self._settings.default_language
        t0 = time.perf_counter()

        resolved = None
        if selection is not None:
            validation = self.validate_selection(table_id, selection, language)
            if not validation.is_valid:
                raise SelectionInvalid(validation)
            resolved = validation.resolved_selection

        dataset = self._dispatch(lambda: self._client.fetch_table_data(table_id, resolved, language))
        payload = FlatValuePayload.from_dataset(dataset)
        records = self.decode(payload)

        metadata = TableMetadata(
            table_id=table_id,
            label=dataset.label,
            dimensions=payload.dimensions,
            size=payload.sizes,
            source=dataset.source,
            updated=dataset.updated,
        )
        logger.info("Fetched %s: %d records in %dms", table_id, len(records),
                    int((time.perf_counter() - t0) * 1000))
        return DecodedDataset(
            table_id=table_id,
            selection=resolved.to_dict() if resolved else {},
            records=records,
            metadata=metadata,
        )

    # ── Discovery ───────────────────────────────────────

    def get_config(self) -> ApiConfig:
        config = self._dispatch(self._client.fetch_config)
        self._learn_limits(config)
        return config

    def get_navigation(self, folder_id: str | None = None, language: str | None = None) -> FolderResponse:
        language = language or self._settings.default_language
        return self._dispatch(lambda: self._client.fetch_navigation(folder_id, language))

    def search_tables(
        self,
        query: str | None = None,
        past_days: int | None = None,
        include_discontinued: bool | None = None,
        page_number: int | None = None,
        page_size: int | None = None,
        language: str | None = None,
        category: str | None = None,
    ) -> TablesResponse:
        """Search tables; *category* filters the returned page locally."""
        result = self._dispatch(lambda: self._client.search_tables(
            query=query,
            past_days=past_days,
            include_discontinued=include_discontinued,
            page_number=page_number,
            page_size=page_size,
            language=language or self._settings.default_language,
        ))
        if category:
            result = result.model_copy(
                update={"tables": [t for t in result.tables if _matches_category(t, category)]}
            )
        return result

    def search_regions(self, query: str, language: str | None = None) -> list[TableSummary]:
        """Tables likely to carry region codes for *query*."""
        result = self.search_tables(query=f"region {query}", page_size=5, language=language)
        lowered = query.lower()
        return [
            t for t in result.tables
            if any("region" in v.lower() for v in t.variable_names)
            or "region" in t.label.lower()
            or lowered in t.label.lower()
        ]

