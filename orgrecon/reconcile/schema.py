from __future__ import annotations

from typing import Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

from orgrecon.roster.schema import Position

# -----------------------------
# Type aliases
# -----------------------------
PageStatus = Literal["success", "error"]
ErrorKind = Literal["mismatch", "duplicate", "missing"]
PageKey = Tuple[str, int]  # (file_name, page)


# -----------------------------
# Facts handed over by the document adapter
# -----------------------------
class DetectedCode(BaseModel):
    """One occurrence of a position code on a page; equal tuples are the same occurrence."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    code: str = Field(..., min_length=1)
    file_name: str
    page: int = Field(..., ge=1)
    x: float = 0.0
    y: float = 0.0
    width: float = Field(0.0, ge=0.0)
    height: float = Field(0.0, ge=0.0)

    @property
    def page_key(self) -> PageKey:
        return (self.file_name, self.page)


class PageContext(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    file_name: str
    page: int = Field(..., ge=1)
    file_path: Optional[str] = None
    description: Optional[str] = None
    status: PageStatus = "success"
    error: Optional[str] = None

    @property
    def page_key(self) -> PageKey:
        return (self.file_name, self.page)


# -----------------------------
# Derived facts
# -----------------------------
class Match(BaseModel):
    """A roster position whose code was detected on (file_name, page)."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    position: Position
    file_name: str
    page: int = Field(..., ge=1)

    @property
    def code(self) -> str:
        return self.position.code or ""

    @property
    def row_number(self) -> int:
        return self.position.row_number

    @property
    def reports_to(self) -> Optional[str]:
        return self.position.reports_to

    @property
    def page_key(self) -> PageKey:
        return (self.file_name, self.page)


class ReconciliationError(BaseModel):
    """
    A finding where document and roster disagree.

    mismatch:  position_code is on the page but not in the roster
    duplicate: position_code matched >= 2 roster rows on the same page (row_numbers)
    missing:   position_code is a roster supervisor of matched codes (referenced_by)
               and appears on no page of this file
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: ErrorKind
    file_name: str
    page: int = Field(..., ge=1)
    file_path: Optional[str] = None
    position_code: str
    description: str
    row_numbers: Tuple[int, ...] = ()
    referenced_by: Tuple[str, ...] = ()

    @model_validator(mode="after")
    def _check_kind(self) -> "ReconciliationError":
        if self.kind == "duplicate" and len(set(self.row_numbers)) < 2:
            raise ValueError("duplicate requires at least two distinct row_numbers")
        if self.kind != "duplicate" and self.row_numbers:
            raise ValueError(f"{self.kind} carries no row_numbers")
        if self.kind == "missing" and not self.referenced_by:
            raise ValueError("missing requires referenced_by")
        if self.kind != "missing" and self.referenced_by:
            raise ValueError(f"{self.kind} carries no referenced_by")
        return self

    @property
    def page_key(self) -> PageKey:
        return (self.file_name, self.page)

    def sort_key(self) -> Tuple[str, int, str, str]:
        return (self.file_name, self.page, self.kind, self.position_code)
