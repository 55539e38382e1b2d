"""
Unit tests -- PxWeb client: URLs, status mapping, format checks.
"""
import pytest

from scb_query.client.api_client import PxWebClient, classify_bad_request
from scb_query.client.transport import FetchResponse
from scb_query.core.errors import ApiRequestError, MalformedPayload, QuotaExceeded, ResponseFormatError
from scb_query.governance.selection import Selection

BASE_URL = "https://api.test/v2"


@pytest.fixture
def client(transport) -> PxWebClient:
    return PxWebClient(transport, BASE_URL + "/", user_agent="tests/1.0")


# ── Requests ────────────────────────────────────────────

def test_config_sets_max_cells(client, transport, make_response, config_payload):
    transport.add("/config", make_response(config_payload))
    cfg = client.fetch_config()
    assert cfg.max_calls_per_time_window == 30
    assert client.max_data_cells == 150000
    call = transport.calls[0]
    assert call["url"] == f"{BASE_URL}/config"
    assert call["headers"]["User-Agent"] == "tests/1.0"
    assert call["headers"]["Accept"] == "application/json"


def test_navigation_paths(client, transport, make_response):
    transport.add("/navigation", make_response({"language": "en", "folderContents": []}))
    transport.add("/navigation/BE", make_response({"language": "en", "id": "BE", "folderContents": []}))
    client.fetch_navigation(language="sv")
    client.fetch_navigation("BE")
    assert transport.paths() == ["/v2/navigation", "/v2/navigation/BE"]
    assert transport.calls[0]["query"] == "lang=sv"


def test_search_query_params(client, transport, make_response):
    page = {"pageNumber": 2, "pageSize": 5, "totalElements": 0, "totalPages": 0}
    transport.add("/tables", make_response({"language": "en", "tables": [], "page": page}))
    client.search_tables(query="population", past_days=30, include_discontinued=False,
                         page_number=2, page_size=5, language="en")
    query = transport.calls[0]["query"]
    for part in ("query=population", "pastDays=30", "includeDiscontinued=false",
                 "pageNumber=2", "pageSize=5", "lang=en"):
        assert part in query


def test_metadata_parsed(client, transport, make_response, make_dataset, dims):
    transport.add("/tables/TAB638/metadata", make_response(make_dataset([dims["Region"], dims["Tid"]])))
    md = client.fetch_table_metadata("TAB638")
    assert md.table_id == "TAB638"
    assert md.dimension_codes() == ["Region", "Tid"]


def test_metadata_with_inconsistent_size_rejected(client, transport, make_response, make_dataset, dims):
    doc = make_dataset([dims["Region"], dims["Tid"]])
    doc["size"] = [2, 5]
    transport.add("/tables/TAB638/metadata", make_response(doc))
    with pytest.raises(MalformedPayload):
        client.fetch_table_metadata("TAB638")


def test_data_default_selection_is_get(client, transport, make_response, make_dataset, dims):
    transport.add("/tables/TAB638/data", make_response(make_dataset([dims["Tid"]], values=[1, 2])))
    dataset = client.fetch_table_data("TAB638")
    assert dataset.value == [1, 2]
    call = transport.calls[0]
    assert call["method"] == "GET"
    assert "outputFormat=json-stat2" in call["query"]


def test_data_selection_is_posted(client, transport, make_response, make_dataset, dims):
    transport.add("/tables/TAB638/data", make_response(make_dataset([dims["Tid"]], values=[1, 2])),
                  method="POST")
    client.fetch_table_data("TAB638", Selection.parse({"Tid": ["*"]}), language="sv")
    call = transport.calls[0]
    assert call["method"] == "POST"
    assert call["headers"]["Content-Type"] == "application/json"
    assert call["json"] == {"selection": [{"variableCode": "Tid", "valueCodes": ["*"]}]}
    assert "lang=sv" in call["query"]


# ── Status mapping ──────────────────────────────────────

def test_429_is_quota_exceeded(client, transport):
    transport.add("/config", FetchResponse(429, "text/plain", "", {"Retry-After": "7"}))
    with pytest.raises(QuotaExceeded) as exc:
        client.fetch_config()
    assert exc.value.server_side is True
    assert exc.value.retry_after == 7.0
    assert "429" in str(exc.value)


def test_403_on_data_reports_cell_limit(client, transport, make_response, config_payload):
    transport.add("/config", make_response(config_payload))
    transport.add("/tables/T/data", FetchResponse(403, "text/plain", "Forbidden"), method="POST")
    client.fetch_config()
    with pytest.raises(ApiRequestError) as exc:
        client.fetch_table_data("T", Selection.parse({"Tid": ["*"]}))
    assert exc.value.status == 403
    assert "150000" in str(exc.value)


def test_400_on_data_is_classified(client, transport):
    transport.add("/tables/T/data", FetchResponse(400, "text/plain", "Unknown valueCode 9999"), method="POST")
    with pytest.raises(ApiRequestError) as exc:
        client.fetch_table_data("T", Selection.parse({"Region": ["9999"]}))
    assert str(exc.value).startswith("Invalid variable values in selection")
    assert "Troubleshooting suggestions:" in str(exc.value)
    assert exc.value.tips


def test_404_message_includes_body(client, transport):
    transport.add("/tables/NOPE/metadata", FetchResponse(404, "text/plain", "Table not found"))
    with pytest.raises(ApiRequestError) as exc:
        client.fetch_table_metadata("NOPE")
    assert exc.value.status == 404
    assert str(exc.value) == "API request failed: 404: Table not found"


def test_html_error_body_is_summarised(client, transport):
    transport.add("/config", FetchResponse(500, "text/html", "<!DOCTYPE html><html>oops</html>"))
    with pytest.raises(ApiRequestError) as exc:
        client.fetch_config()
    assert "HTML error page" in str(exc.value)


# ── Format checks ───────────────────────────────────────

def test_non_json_content_type(client, transport):
    transport.add("/config", FetchResponse(200, "text/html", "<html></html>"))
    with pytest.raises(ResponseFormatError):
        client.fetch_config()


def test_schema_mismatch(client, transport, make_response):
    transport.add("/config", make_response({"apiVersion": "2.0"}))
    with pytest.raises(ResponseFormatError):
        client.fetch_config()


def test_invalid_json(client, transport):
    transport.add("/config", FetchResponse(200, "application/json", "{not json"))
    with pytest.raises(ResponseFormatError):
        client.fetch_config()


# ── 400 classification ──────────────────────────────────

@pytest.mark.parametrize("body, headline", [
    ("Unknown variable Kommun", "Invalid variable name or code in selection"),
    ("No such valueCode", "Invalid variable values in selection"),
    ("Malformed selection", "Invalid selection format or syntax"),
    ("Bad date", "Invalid time/date format in selection"),
])
def test_classify_bad_request(body, headline):
    message, tips = classify_bad_request(body)
    assert message == headline
    assert len(tips) == 3


def test_classify_unrecognised_body():
    message, tips = classify_bad_request("something else")
    assert message == "Bad request (400): something else"
    assert tips
