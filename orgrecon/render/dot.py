"""
dot.py

Graphviz DOT text for org charts. Only produces text; turning it into an
image is left to the `dot` binary.
"""

from __future__ import annotations

import hashlib
import re
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from orgrecon.reconcile.query import PageBundle
from orgrecon.reconcile.schema import ReconciliationError
from orgrecon.roster.schema import Position

Attrs = Dict[str, object]
Edge = Tuple[str, str, Attrs]

GRAPH_ATTRS: Attrs = {"rankdir": "TB", "splines": "ortho", "concentrate": "true"}
NODE_ATTRS: Attrs = {"fontname": "Arial", "fontsize": 11, "margin": 0.2}
EDGE_ATTRS: Attrs = {"fontname": "Arial", "fontsize": 9, "arrowsize": 0.8}


def node_id(code: Optional[str]) -> Optional[str]:
    if not code:
        return None
    cleaned = re.sub(r"[^a-zA-Z0-9_-]", "_", str(code))
    cleaned = re.sub(r"_{2,}", "_", cleaned).strip()
    return cleaned or None


def display_name(name: Optional[str]) -> str:
    if not name or not name.strip() or name.strip().lower() == "vacant":
        return "VACANT"
    return name.strip().upper()


def _quote(value: object) -> str:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    s = str(value).replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
    return f'"{s}"'


def _attr_list(attrs: Attrs) -> str:
    return ", ".join(f"{k}={_quote(v)}" for k, v in attrs.items())


# ---------- nodes ----------


def position_node(position: Position, *, show_codes: bool = False) -> Attrs:
    name = display_name(position.employee_name)
    label = [name]
    if position.code:
        label.append(position.code)
    if position.title:
        label.append(position.title)
    if show_codes and position.agency_code:
        label.append(f"Agency: {position.agency_code}")
    if show_codes and position.unit_code:
        label.append(f"Unit: {position.unit_code}")

    manager = position.direct_subordinates > 0
    ra = position.time_base == "RA"

    attrs: Attrs = {"label": "\n".join(label)}
    if name == "VACANT":
        attrs.update(fillcolor="lightgray", fontcolor="red", shape="box", style="filled,dashed")
    elif ra:
        style = "filled,dotted" if manager else "filled,rounded,dotted"
        attrs.update(fillcolor="white", shape="box", style=style, penwidth=2, peripheries=2)
    else:
        style = "filled" if manager else "filled,rounded"
        attrs.update(fillcolor="white", shape="box", style=style)
    return attrs


def referenced_supervisor_nodes(positions: Sequence[Position]) -> Dict[str, Attrs]:
    """Supervisors referenced by the given positions but absent from them."""
    existing = {p.code for p in positions if p.code}
    out: Dict[str, Attrs] = {}
    for sup in sorted({p.supervisor_code for p in positions if p.supervisor_code} - existing):
        out[node_id(sup)] = {
            "label": f"{sup}\n(Referenced)",
            "fillcolor": "yellow",
            "fontcolor": "black",
            "style": "filled",
            "shape": "box",
            "penwidth": 2,
        }
    return out


def error_node_id(error: ReconciliationError) -> str:
    key = f"{error.kind}|{error.file_name}|{error.page}|{error.position_code}"
    return "error_" + hashlib.sha256(key.encode("utf-8")).hexdigest()[:12]


def error_node(error: ReconciliationError) -> Attrs:
    heading = {
        "mismatch": "Extra",
        "duplicate": "Duplicate",
        "missing": "Missing",
    }[error.kind]
    label = [f"{heading}: {error.position_code}", error.description, f"Page: {error.page}"]
    return {
        "label": "\n".join(label),
        "fillcolor": "red",
        "fontcolor": "white",
        "style": "filled",
        "shape": "box",
        "penwidth": 2,
        "fontsize": 10,
    }


# ---------- edges ----------


def reporting_edges(positions: Iterable[Position]) -> List[Edge]:
    """supervisor -> subordinate"""
    return [
        (node_id(p.supervisor_code), node_id(p.code), {"color": "black", "arrowhead": "normal"})
        for p in positions
        if p.has_valid_code and p.supervisor_code
    ]


def dotted_line_edges(positions: Iterable[Position]) -> List[Edge]:
    return [
        (node_id(p.code), node_id(p.dotted_line_reports_to), {"style": "dashed", "color": "gray"})
        for p in positions
        if p.code and node_id(p.dotted_line_reports_to)
    ]


def error_edges(errors: Sequence[ReconciliationError], positions: Sequence[Position]) -> List[Edge]:
    """Errors hang below the chart; duplicates point at the affected node."""
    if not errors:
        return []
    roots = [p for p in positions if p.has_valid_code and p.supervisor_code is None]
    invis: Attrs = {"style": "invis", "constraint": "true", "weight": 100}
    edges: List[Edge] = [(node_id(r.code), "error_anchor", dict(invis)) for r in roots]
    codes = {p.code for p in positions}
    for e in errors:
        eid = error_node_id(e)
        edges.append(("error_anchor", eid, dict(invis)))
        if e.kind == "duplicate" and e.position_code in codes:
            edges.append(
                (
                    eid,
                    node_id(e.position_code),
                    {"color": "red", "style": "dashed", "arrowhead": "diamond", "constraint": "false"},
                )
            )
    return edges


# ---------- graph ----------


def roster_to_dot(
    positions: Sequence[Position],
    *,
    errors: Sequence[ReconciliationError] = (),
    rankdir: str = "TB",
    show_codes: bool = False,
    include_dotted_lines: bool = True,
) -> str:
    nodes: Dict[str, Attrs] = {}
    for p in positions:
        nid = node_id(p.code)
        if nid and nid not in nodes:
            nodes[nid] = position_node(p, show_codes=show_codes)
    nodes.update(referenced_supervisor_nodes(positions))
    if errors:
        nodes["error_anchor"] = {"label": "", "shape": "point", "style": "invis", "width": 0, "height": 0}
        for e in errors:
            nodes[error_node_id(e)] = error_node(e)

    edges = reporting_edges(positions)
    if include_dotted_lines:
        edges += dotted_line_edges(positions)
    edges += error_edges(errors, positions)

    lines = ["digraph orgchart {"]
    lines.append(f"  graph [{_attr_list({**GRAPH_ATTRS, 'rankdir': rankdir})}];")
    lines.append(f"  node [{_attr_list(NODE_ATTRS)}];")
    lines.append(f"  edge [{_attr_list(EDGE_ATTRS)}];")
    for nid, attrs in nodes.items():
        lines.append(f"  {_quote(nid)} [{_attr_list(attrs)}];")
    for src, dst, attrs in edges:
        lines.append(f"  {_quote(src)} -> {_quote(dst)} [{_attr_list(attrs)}];")
    lines.append("}")
    return "\n".join(lines) + "\n"


def page_bundle_to_dot(bundle: PageBundle, *, rankdir: str = "TB") -> str:
    """Chart of the positions matched on one page plus that page's errors."""
    seen = set()
    positions: List[Position] = []
    for m in bundle.matches:
        if m.row_number in seen:
            continue
        seen.add(m.row_number)
        positions.append(m.position)
    return roster_to_dot(positions, errors=bundle.errors, rankdir=rankdir)
