"""
PxWebApi 2 wire client -- URL building, response checking, schema parsing.

This module does not gate calls on the usage window; ``QueryPipeline`` does
that around every method here.  Each method issues exactly one HTTP request.
"""
from __future__ import annotations

import json
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from scb_query.catalog.metadata import TableMetadata, parse_table_metadata
from scb_query.catalog.models import ApiConfig, FolderResponse, JsonStatDataset, TablesResponse
from scb_query.core.errors import ApiRequestError, MalformedPayload, QuotaExceeded, ResponseFormatError
from scb_query.core.logging import get_logger
from scb_query.client.transport import FetchResponse, Transport
from scb_query.governance.selection import Selection

logger = get_logger(__name__)

M = TypeVar("M", bound=BaseModel)

_OUTPUT_FORMAT = "json-stat2"
_BODY_PREVIEW = 100


# ── 400 classification ──────────────────────────────────

_BAD_REQUEST_RULES: list[tuple[tuple[str, ...], str, list[str]]] = [
    (
        ("variable", "variablecode"),
        "Invalid variable name or code in selection",
        [
            "Use get_table_variables to see all available variable names",
            "Check that variable names match exactly (case-sensitive)",
            "Use validate_selection to check your selection first",
        ],
    ),
    (
        ("value", "valuecode"),
        "Invalid variable values in selection",
        [
            "Use get_table_variables with variable_name to see valid values",
            'For time data, try formats like "2024" or "2024M12" for monthly',
            "For regions, verify codes with search_regions",
        ],
    ),
    (
        ("selection",),
        "Invalid selection format or syntax",
        [
            'Use format: {"VariableName": ["value1", "value2"]}',
            'Ensure variable names use proper case (e.g. "Region", not "region")',
            "Use validate_selection to check your selection first",
        ],
    ),
    (
        ("time", "date"),
        "Invalid time/date format in selection",
        [
            'For annual data, use "2024"',
            'For monthly data, use "2024M12" format',
            "Check available time values with get_table_variables",
        ],
    ),
]


def classify_bad_request(body: str) -> tuple[str, list[str]]:
    """Map a 400 response body to a headline and troubleshooting tips."""
    lowered = body.lower()
    for keywords, message, tips in _BAD_REQUEST_RULES:
        if any(k in lowered for k in keywords):
            return message, list(tips)
    return (
        f"Bad request (400): {body[:150]}",
        [
            "Use validate_selection to validate your selection",
            "Check variable names and values with get_table_variables",
        ],
    )


def _body_details(body: str) -> str:
    if "<!DOCTYPE html" in body or "<html" in body:
        return " (Server returned HTML error page)"
    return f": {body[:_BODY_PREVIEW]}" if body else ""


def _retry_after(headers: dict[str, str]) -> float:
    for key, value in headers.items():
        if key.lower() == "retry-after":
            try:
                return float(value)
            except ValueError:
                return 0.0
    return 0.0


# ── Client ──────────────────────────────────────────────


class PxWebClient:
    """Thin typed wrapper over the PxWebApi 2 endpoints.

    Parameters
    ----------
    transport : Transport
        Anything implementing ``fetch``.
    base_url : str
        API root, e.g. ``https://api.scb.se/OV0104/v2beta/api/v2``.
    user_agent : str
        Sent on every request.
    """

    def __init__(self, transport: Transport, base_url: str, user_agent: str = "scb-query-pipeline/0.1"):
        self._transport = transport
        self._base_url = base_url.rstrip("/")
        self._headers = {"Accept": "application/json", "User-Agent": user_agent}
        self.max_data_cells: int | None = None

    # ── Endpoints ───────────────────────────────────────

    def fetch_config(self) -> ApiConfig:
        config = self._get("/config", ApiConfig)
        self.max_data_cells = config.max_data_cells
        return config

    def fetch_navigation(self, folder_id: str | None = None, language: str = "en") -> FolderResponse:
        endpoint = f"/navigation/{folder_id}" if folder_id else "/navigation"
        return self._get(endpoint, FolderResponse, {"lang": language})

    def search_tables(
        self,
        query: str | None = None,
        past_days: int | None = None,
        include_discontinued: bool | None = None,
        page_number: int | None = None,
        page_size: int | None = None,
        language: str | None = None,
    ) -> TablesResponse:
        params: dict[str, Any] = {}
        if query:
            params["query"] = query
        if past_days:
            params["pastDays"] = past_days
        if include_discontinued is not None:
            params["includeDiscontinued"] = str(include_discontinued).lower()
        if page_number:
            params["pageNumber"] = page_number
        if page_size:
            params["pageSize"] = page_size
        if language:
            params["lang"] = language
        return self._get("/tables", TablesResponse, params)

    def fetch_table_metadata(self, table_id: str, language: str = "en") -> TableMetadata:
        dataset = self._get(f"/tables/{table_id}/metadata", JsonStatDataset, {"lang": language})
        metadata = parse_table_metadata(dataset, table_id)
        if not metadata.is_consistent():
            raise MalformedPayload(
                f"Metadata for {table_id}: size {list(metadata.size)} does not match dimension "
                f"value counts {[d.size for d in metadata.dimensions]}"
            )
        return metadata

    def fetch_table_data(
        self,
        table_id: str,
        selection: Selection | None = None,
        language: str = "en",
    ) -> JsonStatDataset:
        """GET the default selection, or POST an explicit one."""
        params = {"lang": language, "outputFormat": _OUTPUT_FORMAT}
        endpoint = f"/tables/{table_id}/data"
        if selection is None:
            return self._get(endpoint, JsonStatDataset, params)
        resp = self._transport.fetch(
            self._url(endpoint, params),
            {**self._headers, "Content-Type": "application/json"},
            method="POST",
            json_body=selection.to_request_body(),
        )
        return self._parse(resp, JsonStatDataset, data_request=True)

    # ── Internals ───────────────────────────────────────

    def _url(self, endpoint: str, params: dict[str, Any] | None = None) -> str:
        url = f"{self._base_url}{endpoint}"
        if params:
            url += f"?{httpx.QueryParams(params)}"
        return url

    def _get(self, endpoint: str, model: type[M], params: dict[str, Any] | None = None) -> M:
        resp = self._transport.fetch(self._url(endpoint, params), dict(self._headers))
        return self._parse(resp, model)

    def _parse(self, resp: FetchResponse, model: type[M], data_request: bool = False) -> M:
        if not resp.ok:
            self._raise_for_status(resp, data_request)

        if not resp.is_json:
            raise ResponseFormatError(
                f"Expected JSON response but got {resp.content_type or 'no content type'}. "
                f"Response: {resp.body[:_BODY_PREVIEW]}..."
            )
        try:
            return model.model_validate(json.loads(resp.body))
        except (json.JSONDecodeError, ValidationError) as exc:
            raise ResponseFormatError(f"Unexpected {model.__name__} payload: {exc}") from exc

    def _raise_for_status(self, resp: FetchResponse, data_request: bool) -> None:
        if resp.status == 429:
            raise QuotaExceeded(_retry_after(resp.headers), server_side=True)

        if data_request and resp.status == 403:
            limit = self.max_data_cells if self.max_data_cells is not None else "unknown"
            raise ApiRequestError(
                403,
                f"Request forbidden (403). The query may result in too many data cells "
                f"(limit: {limit}). Try using more specific selections.",
            )

        if data_request and resp.status == 400:
            message, tips = classify_bad_request(resp.body)
            raise ApiRequestError(400, message, tips)

        logger.warning("API request failed with status %d", resp.status)
        raise ApiRequestError(resp.status, f"API request failed: {resp.status}{_body_details(resp.body)}")
