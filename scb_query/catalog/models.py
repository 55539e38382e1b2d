"""
Wire models -- the PxWebApi 2 JSON payloads this client reads.

Only fields the pipeline uses are required; everything else is optional so a
server adding fields does not break parsing.
"""
from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class _Wire(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


# ── /config ─────────────────────────────────────────────


class Language(_Wire):
    id: str
    label: str


class SourceReference(_Wire):
    language: str
    text: str


class ApiConfig(_Wire):
    api_version: str = Field(..., alias="apiVersion")
    app_version: str | None = Field(None, alias="appVersion")
    languages: list[Language] = Field(default_factory=list)
    default_language: str = Field("en", alias="defaultLanguage")
    max_data_cells: int = Field(..., alias="maxDataCells")
    max_calls_per_time_window: int = Field(..., alias="maxCallsPerTimeWindow", ge=1)
    time_window: int = Field(..., alias="timeWindow", ge=1)
    license: str | None = None
    source_references: list[SourceReference] = Field(default_factory=list, alias="sourceReferences")


# ── /navigation ─────────────────────────────────────────


class FolderItem(_Wire):
    type: Literal["FolderInformation", "Table", "Heading"]
    id: str
    label: str
    description: str | None = None
    tags: list[str] = Field(default_factory=list)
    updated: str | None = None
    first_period: str | None = Field(None, alias="firstPeriod")
    last_period: str | None = Field(None, alias="lastPeriod")
    variable_names: list[str] = Field(default_factory=list, alias="variableNames")
    discontinued: bool | None = None


class FolderResponse(_Wire):
    language: str
    id: str | None = None
    label: str | None = None
    description: str | None = None
    folder_contents: list[FolderItem] = Field(default_factory=list, alias="folderContents")


# ── /tables ─────────────────────────────────────────────


class TableSummary(_Wire):
    id: str
    label: str
    description: str | None = None
    updated: str | None = None
    first_period: str | None = Field(None, alias="firstPeriod")
    last_period: str | None = Field(None, alias="lastPeriod")
    variable_names: list[str] = Field(default_factory=list, alias="variableNames")
    source: str | None = None
    subject_code: str | None = Field(None, alias="subjectCode")
    time_unit: str | None = Field(None, alias="timeUnit")
    discontinued: bool | None = None


class PageInfo(_Wire):
    page_number: int = Field(..., alias="pageNumber")
    page_size: int = Field(..., alias="pageSize")
    total_elements: int = Field(..., alias="totalElements")
    total_pages: int = Field(..., alias="totalPages")


class TablesResponse(_Wire):
    language: str
    tables: list[TableSummary] = Field(default_factory=list)
    page: PageInfo


# ── JSON-stat 2 dataset (metadata and data) ─────────────


class Category(_Wire):
    # JSON-stat allows the index as either {code: position} or [code, ...]
    index: dict[str, int] | list[str]
    label: dict[str, str] | None = None


class DimensionExtension(_Wire):
    elimination: bool | None = None
    elimination_value_code: str | None = Field(None, alias="eliminationValueCode")


class JsonStatDimension(_Wire):
    label: str
    category: Category
    extension: DimensionExtension | None = None


class Contact(_Wire):
    name: str | None = None
    mail: str | None = None
    phone: str | None = None


class Note(_Wire):
    text: str
    mandatory: bool = False


class DatasetExtension(_Wire):
    px: dict[str, Any] | None = None
    contact: list[Contact] = Field(default_factory=list)
    notes: list[Note] = Field(default_factory=list)


class JsonStatDataset(_Wire):
    version: str = "2.0"
    class_: str = Field("dataset", alias="class")
    id: list[str] = Field(default_factory=list)
    label: str = ""
    source: str | None = None
    updated: str | None = None
    size: list[int] = Field(default_factory=list)
    dimension: dict[str, JsonStatDimension] = Field(default_factory=dict)
    value: list[int | float | None] | None = None
    extension: DatasetExtension | None = None
