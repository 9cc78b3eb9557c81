from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

# -----------------------------
# Type aliases
# -----------------------------
PageStatus = Literal["success", "error"]

SCHEMA_VERSION = "1.0.0"


class _SnapshotModel(BaseModel):
    # JSON keys are camelCase; Python attributes stay snake_case
    model_config = ConfigDict(
        extra="forbid", alias_generator=to_camel, populate_by_name=True
    )


# -----------------------------
# Core schema
# -----------------------------
class PositionBox(_SnapshotModel):
    text: str = Field(..., pattern=r"^\d{3}-\d{3}-\d{4}-\d{3}$")
    x: float
    y: float
    width: float = Field(..., ge=0.0)
    height: float = Field(..., ge=0.0)


class PageResult(_SnapshotModel):
    page: int = Field(..., ge=1, description="1-based page index")
    description: Optional[str] = None
    position_count: int = Field(0, ge=0)
    positions: List[PositionBox] = Field(default_factory=list)
    status: PageStatus = "success"
    error: Optional[str] = None
    file_path: str
    file_name: str

    @field_validator("description")
    @classmethod
    def _strip_description(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = " ".join(v.split())
        return v or None

    @model_validator(mode="after")
    def _check_page(self) -> "PageResult":
        if self.position_count != len(self.positions):
            raise ValueError("positionCount must equal the number of positions")
        if self.status == "error" and self.positions:
            raise ValueError("error pages carry no positions")
        return self


class FileSummary(_SnapshotModel):
    total_pages: int = Field(..., ge=0)
    successful_pages: int = Field(..., ge=0)
    total_positions: int = Field(..., ge=0)


class FileExtraction(_SnapshotModel):
    file_path: str
    name: str = Field(..., min_length=1)
    summary: FileSummary
    pages: List[PageResult] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_summary(self) -> "FileExtraction":
        s = self.summary
        if s.total_pages != len(self.pages):
            raise ValueError("summary.totalPages must equal the number of pages")
        if s.successful_pages != sum(1 for p in self.pages if p.status == "success"):
            raise ValueError("summary.successfulPages does not match page statuses")
        if s.total_positions != sum(p.position_count for p in self.pages):
            raise ValueError("summary.totalPositions does not match page counts")
        return self


class ExtractionMetadata(_SnapshotModel):
    extracted_at: datetime
    total_files: int = Field(..., ge=0)
    schema_version: str = SCHEMA_VERSION


class ExtractionSnapshot(_SnapshotModel):
    metadata: ExtractionMetadata
    extractions: List[FileExtraction] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_files(self) -> "ExtractionSnapshot":
        if self.metadata.total_files != len(self.extractions):
            raise ValueError("metadata.totalFiles must equal the number of extractions")
        return self


def summarize_pages(pages: List[PageResult]) -> FileSummary:
    return FileSummary(
        total_pages=len(pages),
        successful_pages=sum(1 for p in pages if p.status == "success"),
        total_positions=sum(p.position_count for p in pages),
    )


# -----------------------------
# JSON Schema export
# -----------------------------
def export_json_schema() -> dict:
    """Export the JSON Schema for the snapshot contract (Pydantic v2)."""
    return ExtractionSnapshot.model_json_schema(by_alias=True)
