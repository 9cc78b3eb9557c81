from __future__ import annotations

import zipfile
from pathlib import Path
from typing import List, Optional

import openpyxl
from openpyxl.utils.exceptions import InvalidFileException

from orgrecon.roster.normalize import RosterError
from orgrecon.roster.schema import RosterCell


def read_cells(path: Path, sheet_name: Optional[str] = None) -> List[RosterCell]:
    """
    Read every non-empty cell of a workbook (or of one sheet) as RosterCells.
    Formula cells are read with their cached values.
    """
    try:
        wb = openpyxl.load_workbook(str(path), read_only=True, data_only=True)
    except (OSError, ValueError, KeyError, InvalidFileException, zipfile.BadZipFile) as e:
        raise RosterError(f"Cannot open roster {path}: {e}") from e

    try:
        names = wb.sheetnames
        if sheet_name is not None:
            if sheet_name not in names:
                raise RosterError(
                    f"Sheet {sheet_name!r} not found in {path.name} (available: {', '.join(names)})"
                )
            names = [sheet_name]

        cells: List[RosterCell] = []
        for name in names:
            ws = wb[name]
            for r, row in enumerate(ws.iter_rows(values_only=True)):
                for c, value in enumerate(row):
                    if value is None:
                        continue
                    if not isinstance(value, (str, int, float, bool)):
                        # dates and other rich types
                        value = str(value)
                    cells.append(RosterCell(sheet_name=name, row=r, col=c, value=value))
        return cells
    finally:
        wb.close()
