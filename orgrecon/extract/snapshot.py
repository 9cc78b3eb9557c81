from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Dict, List, Tuple

from pydantic import ValidationError

from orgrecon.extract.schema import ExtractionSnapshot, PositionBox
from orgrecon.reconcile.schema import DetectedCode, PageContext


class SnapshotError(ValueError):
    """Snapshot file is unreadable or does not satisfy the contract."""


# ---------- persistence ----------


def save_snapshot(snapshot: ExtractionSnapshot, out_path: Path) -> Path:
    payload = snapshot.model_dump(mode="json", by_alias=True)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(
        json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False),
        encoding="utf-8",
    )
    return out_path


def load_snapshot(path: Path) -> ExtractionSnapshot:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise SnapshotError(f"Cannot read snapshot {path}: {e}") from e
    try:
        return ExtractionSnapshot.model_validate(data)
    except ValidationError as e:
        raise SnapshotError(f"Invalid snapshot {path}:\n{e}") from e


# ---------- facts ----------


def snapshot_to_facts(
    snapshot: ExtractionSnapshot,
) -> Tuple[List[DetectedCode], List[PageContext]]:
    """
    Flatten a snapshot into DetectedCode and PageContext facts.
    Failed pages only yield their PageContext.
    """
    detections: List[DetectedCode] = []
    pages: List[PageContext] = []
    for fx in snapshot.extractions:
        for pr in fx.pages:
            file_name = pr.file_name or fx.name
            pages.append(
                PageContext(
                    file_name=file_name,
                    page=pr.page,
                    file_path=pr.file_path or fx.file_path,
                    description=pr.description,
                    status=pr.status,
                    error=pr.error,
                )
            )
            if pr.status != "success":
                continue
            for box in pr.positions:
                detections.append(
                    DetectedCode(
                        code=box.text,
                        file_name=file_name,
                        page=pr.page,
                        x=box.x,
                        y=box.y,
                        width=box.width,
                        height=box.height,
                    )
                )
    return detections, pages


# ---------- lookups ----------


def positions_for_description(
    snapshot: ExtractionSnapshot, pattern: str
) -> List[PositionBox]:
    """
    Boxes from all pages whose description matches `pattern` (case-insensitive),
    one per code, keeping the first occurrence.
    """
    rx = re.compile(pattern, re.I)
    seen: Dict[str, PositionBox] = {}
    for fx in snapshot.extractions:
        for pr in fx.pages:
            if not rx.search(pr.description or ""):
                continue
            for box in pr.positions:
                seen.setdefault(box.text, box)
    return list(seen.values())


def positions_by_file(snapshot: ExtractionSnapshot) -> List[Dict[str, object]]:
    """Per file: distinct codes (first box kept) across all of its pages."""
    out: List[Dict[str, object]] = []
    for fx in snapshot.extractions:
        first: Dict[str, PositionBox] = {}
        for pr in fx.pages:
            for box in pr.positions:
                first.setdefault(box.text, box)
        out.append(
            {
                "file_name": fx.name,
                "file_path": fx.file_path,
                "positions": list(first.values()),
                "codes": list(first.keys()),
            }
        )
    return out
