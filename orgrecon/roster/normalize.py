"""
normalize.py

Turns raw roster cells into canonical Position entities:
- Maps named columns by exact header match (header row is row 0)
- Strips the half-time marker " (.5)" from position codes into `part_time`
- Keeps rows with non-code values; they simply never become graph nodes
"""

from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from orgrecon.roster.schema import Position, RosterCell, is_position_code

DEFAULT_SHEET = "ALL REGIONS"

# header -> Position field
ROSTER_COLUMNS: Dict[str, str] = {
    "Position": "code",
    "Title": "title",
    "Current Employee": "employee_name",
    "Position Reports To Position": "reports_to",
    "Position Reports To Position (Dotted Line)": "dotted_line_reports_to",
    "City": "city",
    "Comments/Notes": "notes",
    "Dotted_Reports": "dotted_reports",
    "AgencyCode": "agency_code",
    "UnitCode": "unit_code",
    "ClassCode": "class_code",
    "SerialNumber": "serial_number",
    "Unique_Flag": "unique_flag",
    "Time_Base": "time_base",
    "TB_Adjustment": "tb_adjustment",
    "Region": "region",
}

REQUIRED_COLUMNS: Tuple[str, ...] = ("Position", "Position Reports To Position")

# " (.5)", "(.5)", "( 0.5 )" ...
PART_TIME_RE = re.compile(r"\s*\(\s*0?\.5\s*\)")


class RosterError(ValueError):
    """Roster cannot be used at all (missing sheet, missing columns, unreadable)."""


def cell_text(value: Any) -> Optional[str]:
    """Spreadsheet value -> trimmed text, None for blanks."""
    if value is None:
        return None
    if isinstance(value, bool):
        return str(value).upper()
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    s = str(value).strip()
    return s or None


def parse_position_code(raw: Any) -> Tuple[Optional[str], bool]:
    """
    Returns (code, part_time). The code is trimmed and has the half-time
    marker removed; it is not validated here.
    """
    text = cell_text(raw)
    if text is None:
        return None, False
    stripped, n = PART_TIME_RE.subn("", text)
    stripped = stripped.strip()
    return (stripped or None), n > 0


def normalize_row(row_number: int, row: Mapping[str, Any]) -> Position:
    fields: Dict[str, Any] = {}
    for header, field in ROSTER_COLUMNS.items():
        if field == "code":
            continue
        fields[field] = cell_text(row.get(header))

    code, part_time = parse_position_code(row.get("Position"))
    return Position(row_number=row_number, code=code, part_time=part_time, **fields)


def _sheet_cells(cells: Iterable[RosterCell], sheet_name: str) -> List[RosterCell]:
    all_cells = list(cells)
    selected = [c for c in all_cells if c.sheet_name == sheet_name]
    if not selected:
        available = sorted({c.sheet_name for c in all_cells})
        raise RosterError(
            f"Sheet {sheet_name!r} not found (available: {', '.join(available) or 'none'})"
        )
    return selected


def extract_positions(
    cells: Iterable[RosterCell], sheet_name: str = DEFAULT_SHEET
) -> List[Position]:
    """
    Build Positions from one sheet of roster cells, ordered by row number.
    Raises RosterError if the sheet or a required column is missing.
    """
    sheet = _sheet_cells(cells, sheet_name)

    headers: Dict[int, str] = {}
    for c in sorted((c for c in sheet if c.row == 0), key=lambda c: c.col):
        name = cell_text(c.value)
        if name:
            headers[c.col] = name

    missing = [h for h in REQUIRED_COLUMNS if h not in headers.values()]
    if missing:
        raise RosterError(f"Sheet {sheet_name!r} is missing columns: {', '.join(missing)}")

    rows: Dict[int, Dict[str, Any]] = {}
    for c in sheet:
        if c.row == 0 or c.col not in headers:
            continue
        rows.setdefault(c.row, {})[headers[c.col]] = c.value

    positions: List[Position] = []
    for row_number in sorted(rows):
        row = rows[row_number]
        if all(cell_text(v) is None for v in row.values()):
            continue
        positions.append(normalize_row(row_number, row))
    return positions


def invalid_code_rows(positions: Iterable[Position]) -> List[Position]:
    """Rows kept in the roster whose Position value is not a position code."""
    return [p for p in positions if not is_position_code(p.code)]
