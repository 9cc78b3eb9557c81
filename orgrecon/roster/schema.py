from __future__ import annotations

import re
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

# -----------------------------
# Position codes
# -----------------------------
POSITION_CODE_RE = re.compile(r"^\d{3}-\d{3}-\d{4}-\d{3}$")

CellValue = Union[str, int, float, bool, None]


def is_position_code(value: object) -> bool:
    """Exact match of the canonical NNN-NNN-NNNN-NNN pattern."""
    if not isinstance(value, str):
        return False
    return POSITION_CODE_RE.match(value) is not None


# -----------------------------
# Raw tabular input
# -----------------------------
class RosterCell(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    sheet_name: str
    row: int = Field(..., ge=0, description="0-based; row 0 holds the headers")
    col: int = Field(..., ge=0)
    value: CellValue = None


# -----------------------------
# Canonical roster entity
# -----------------------------
class Position(BaseModel):
    """
    One roster row. Counts are filled in by the hierarchy calculator
    (via model_copy) and never change afterwards.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    code: Optional[str] = None
    row_number: int = Field(..., ge=1)
    title: Optional[str] = None
    employee_name: Optional[str] = None
    reports_to: Optional[str] = None
    dotted_line_reports_to: Optional[str] = None
    city: Optional[str] = None
    notes: Optional[str] = None
    dotted_reports: Optional[str] = None
    agency_code: Optional[str] = None
    unit_code: Optional[str] = None
    class_code: Optional[str] = None
    serial_number: Optional[str] = None
    unique_flag: Optional[str] = None
    time_base: Optional[str] = None
    tb_adjustment: Optional[str] = None
    region: Optional[str] = None

    part_time: bool = False
    direct_subordinates: int = Field(0, ge=0)
    total_subordinates: int = Field(0, ge=0)

    @model_validator(mode="after")
    def _check_counts(self) -> "Position":
        if self.total_subordinates < self.direct_subordinates:
            raise ValueError("total_subordinates must be >= direct_subordinates")
        return self

    @property
    def has_valid_code(self) -> bool:
        return is_position_code(self.code)

    @property
    def supervisor_code(self) -> Optional[str]:
        """reports_to as a graph edge; invalid or self references are not edges."""
        if not self.has_valid_code or not is_position_code(self.reports_to):
            return None
        if self.reports_to == self.code:
            return None
        return self.reports_to

    @property
    def is_self_reporting(self) -> bool:
        return self.has_valid_code and self.reports_to == self.code

    @property
    def is_vacant(self) -> bool:
        name = (self.employee_name or "").strip()
        return not name or name.lower() == "vacant"
