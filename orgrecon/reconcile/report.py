from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from orgrecon.reconcile.schema import ReconciliationError
from orgrecon.roster.schema import Position


class MatchRow(BaseModel):
    model_config = ConfigDict(extra="forbid")

    file_name: str
    page: int
    code: str
    row_number: int
    title: Optional[str] = None
    employee_name: Optional[str] = None
    reports_to: Optional[str] = None


class HierarchySummary(BaseModel):
    model_config = ConfigDict(extra="forbid")

    algorithm: str
    positions: int
    processed: int
    iterations: int
    forced: List[str] = Field(default_factory=list)
    self_reporters: List[str] = Field(default_factory=list)
    broken_chains: List[List[str]] = Field(default_factory=list)


class ReconciliationReport(BaseModel):
    model_config = ConfigDict(extra="forbid")

    schema_version: str = Field("1.0.0", description="SemVer of the report schema")
    summary: Dict[str, int]
    hierarchy: HierarchySummary
    positions: List[Position]
    matches: List[MatchRow]
    errors: List[ReconciliationError]


def write_report(report: ReconciliationReport, out_path: Path) -> Path:
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(
        json.dumps(
            report.model_dump(mode="json", exclude_none=True),
            indent=2,
            sort_keys=True,
            ensure_ascii=False,
        ),
        encoding="utf-8",
    )
    return out_path
