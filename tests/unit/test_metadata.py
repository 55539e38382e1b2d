"""
Unit tests -- wire models and table metadata parsing.
"""
import pytest
from pydantic import ValidationError

from scb_query.catalog.metadata import parse_table_metadata
from scb_query.catalog.models import ApiConfig, FolderResponse, JsonStatDataset, TablesResponse


def _metadata(doc, table_id="TAB638"):
    return parse_table_metadata(JsonStatDataset.model_validate(doc), table_id)


# ── JSON-stat parsing ───────────────────────────────────

def test_dimensions_follow_id_order(make_dataset, dims):
    md = _metadata(make_dataset([dims["Tid"], dims["Region"]]))
    assert md.dimension_codes() == ["Tid", "Region"]
    assert md.size == (2, 2)
    assert md.total_cells == 4
    assert md.is_consistent()


def test_value_codes_sorted_by_index_position(make_dataset):
    doc = make_dataset([("Region", "region", ["1484", "0180"], {})])
    doc["dimension"]["Region"]["category"]["index"] = {"0180": 1, "1484": 0}
    md = _metadata(doc)
    assert md.dimension("Region").value_codes == ("1484", "0180")


def test_list_index_accepted(make_dataset):
    doc = make_dataset([("Kon", "sex", ["1", "2"], {"1": "men"})])
    doc["dimension"]["Kon"]["category"]["index"] = ["2", "1"]
    md = _metadata(doc)
    kon = md.dimension("Kon")
    assert kon.value_codes == ("2", "1")
    assert kon.value_label("1") == "men"
    assert kon.value_label("2") == "2"


def test_missing_size_is_derived(make_dataset, dims):
    doc = make_dataset([dims["Region"], dims["Kon"]])
    del doc["size"]
    assert _metadata(doc).size == (2, 2)


def test_missing_id_uses_dimension_order(make_dataset, dims):
    doc = make_dataset([dims["Region"], dims["Tid"]])
    del doc["id"]
    assert _metadata(doc).dimension_codes() == ["Region", "Tid"]


def test_inconsistent_size_detected(make_dataset, dims):
    doc = make_dataset([dims["Region"], dims["Tid"]])
    doc["size"] = [2, 5]
    assert not _metadata(doc).is_consistent()


def test_extension_notes_contacts_and_table_id(make_dataset, dims):
    doc = make_dataset([dims["Tid"]])
    doc["extension"] = {
        "px": {"tableid": "TAB999"},
        "contact": [{"name": "Statistikservice", "mail": "info@scb.se", "phone": "+46 10 479 50 00"}],
        "notes": [{"text": "Preliminary figures", "mandatory": True}],
    }
    doc["dimension"]["Tid"]["extension"] = {"elimination": False}
    md = parse_table_metadata(JsonStatDataset.model_validate(doc))
    assert md.table_id == "TAB999"
    assert md.notes == ("Preliminary figures",)
    assert md.contacts == ("Statistikservice (info@scb.se) - +46 10 479 50 00",)
    assert md.dimension("Tid").elimination is False


def test_dimension_to_dict(make_dataset, dims):
    d = _metadata(make_dataset([dims["Region"]])).dimension("Region").to_dict()
    assert d["values_count"] == 2
    assert d["values"][0] == {"code": "1484", "label": "Lerum"}


def test_unknown_dimension_lookup(make_dataset, dims):
    assert _metadata(make_dataset([dims["Region"]])).dimension("Tid") is None


def test_integer_values_stay_integers(make_dataset, dims):
    dataset = JsonStatDataset.model_validate(make_dataset([dims["Tid"]], values=[10, 2.5]))
    assert dataset.value == [10, 2.5]
    assert isinstance(dataset.value[0], int)


# ── Other wire models ───────────────────────────────────

def test_config_model(config_payload):
    cfg = ApiConfig.model_validate(config_payload)
    assert cfg.max_calls_per_time_window == 30
    assert cfg.time_window == 10
    assert cfg.max_data_cells == 150000
    assert [lang.id for lang in cfg.languages] == ["sv", "en"]


def test_config_rejects_zero_limits(config_payload):
    config_payload["maxCallsPerTimeWindow"] = 0
    with pytest.raises(ValidationError):
        ApiConfig.model_validate(config_payload)


def test_folder_response():
    resp = FolderResponse.model_validate({
        "language": "en",
        "id": "BE",
        "label": "Population",
        "folderContents": [
            {"type": "FolderInformation", "id": "BE0101", "label": "Population statistics"},
            {"type": "Table", "id": "TAB638", "label": "Population by region",
             "firstPeriod": "1968", "lastPeriod": "2024", "variableNames": ["region", "year"]},
        ],
    })
    assert [item.type for item in resp.folder_contents] == ["FolderInformation", "Table"]
    assert resp.folder_contents[1].last_period == "2024"


def test_tables_response_ignores_unknown_fields():
    resp = TablesResponse.model_validate({
        "language": "en",
        "tables": [{"id": "TAB638", "label": "Population", "links": [], "category": "public"}],
        "page": {"pageNumber": 1, "pageSize": 20, "totalElements": 1, "totalPages": 1},
        "links": [],
    })
    assert resp.tables[0].id == "TAB638"
    assert resp.page.total_elements == 1
