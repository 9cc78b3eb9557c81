from __future__ import annotations

import random
from typing import Dict, List, Optional

from orgrecon.hierarchy.calculator import (
    add_subordinate_counts,
    calculate_subordinate_counts,
    count_subordinates_recursive,
)
from orgrecon.roster.schema import Position

# ---------------------------
# Test helpers
# ---------------------------


def _code(n: int) -> str:
    return f"100-200-3000-{n:03d}"


def _pos(n: int, reports_to: Optional[int] = None, row: Optional[int] = None) -> Position:
    return Position(
        code=_code(n),
        row_number=row or n,
        reports_to=_code(reports_to) if reports_to is not None else None,
    )


def _expected_totals(positions: List[Position]) -> Dict[str, int]:
    """Closed-form totals; only valid for acyclic rosters."""
    reports: Dict[str, List[str]] = {}
    for p in positions:
        if p.supervisor_code:
            reports.setdefault(p.supervisor_code, []).append(p.code)

    memo: Dict[str, int] = {}

    def total(code: str) -> int:
        if code not in memo:
            kids = reports.get(code, [])
            memo[code] = len(kids) + sum(total(k) for k in kids)
        return memo[code]

    return {p.code: total(p.code) for p in positions}


def _caterpillar(spine: int) -> List[Position]:
    # spine 1..spine, each spine node reports to the previous one and owns one leaf
    out = [_pos(1)]
    for i in range(2, spine + 1):
        out.append(_pos(i, reports_to=i - 1))
    for i in range(1, spine + 1):
        out.append(_pos(500 + i, reports_to=i))
    return out


# ---------------------------
# Tests
# ---------------------------


def test_root_with_two_reports():
    a, b, c = _pos(1), _pos(2, reports_to=1), _pos(3, reports_to=1)
    result = calculate_subordinate_counts([a, b, c])

    assert result.direct(a.code) == 2
    assert result.total(a.code) == 2
    assert result.total(b.code) == 0
    assert result.total(c.code) == 0
    assert result.diagnostics.algorithm == "queue"
    assert result.diagnostics.forced == []


def test_acyclic_matches_closed_form_and_stays_in_budget():
    positions = _caterpillar(40)
    result = calculate_subordinate_counts(positions)

    expected = _expected_totals(positions)
    for code, total in expected.items():
        assert result.total(code) == total
    assert result.total(_code(1)) == len(positions) - 1
    assert result.diagnostics.forced == []
    assert result.diagnostics.iterations <= result.diagnostics.budget


def test_total_is_direct_plus_report_totals():
    positions = [
        _pos(1),
        _pos(2, 1),
        _pos(3, 1),
        _pos(4, 2),
        _pos(5, 2),
        _pos(6, 5),
        _pos(7, 3),
    ]
    result = calculate_subordinate_counts(positions)

    for p in positions:
        reports = [q for q in positions if q.supervisor_code == p.code]
        assert result.direct(p.code) == len(reports)
        assert result.total(p.code) == len(reports) + sum(result.total(q.code) for q in reports)


def test_input_order_does_not_change_counts():
    positions = _caterpillar(12) + [_pos(900, reports_to=3), _pos(901, reports_to=900)]
    baseline = calculate_subordinate_counts(positions).counts

    rng = random.Random(7)
    for _ in range(5):
        shuffled = positions[:]
        rng.shuffle(shuffled)
        assert calculate_subordinate_counts(shuffled).counts == baseline


def test_idempotent():
    positions = _caterpillar(8)
    first = calculate_subordinate_counts(positions)
    second = calculate_subordinate_counts(positions)
    assert first.counts == second.counts


def test_pure_cycle_uses_recursive_fallback():
    x, y = _pos(1, reports_to=2), _pos(2, reports_to=1)
    result = calculate_subordinate_counts([x, y])

    assert result.diagnostics.algorithm == "recursive"
    for code in (x.code, y.code):
        assert result.direct(code) == 1
        assert result.total(code) >= result.direct(code)
    # each side sees the other once plus itself through the cycle, then stops
    assert result.total(x.code) == 2


def test_cycle_with_leaf_is_forced_not_looped():
    x, y, leaf = _pos(1, reports_to=2), _pos(2, reports_to=1), _pos(3, reports_to=1)
    result = calculate_subordinate_counts([x, y, leaf])

    d = result.diagnostics
    assert d.algorithm == "queue"
    assert d.forced == [x.code]
    assert result.total(leaf.code) == 0
    assert result.total(x.code) == 2  # leaf + y (y still unresolved when forced)
    assert result.total(y.code) == 3
    assert d.iterations <= d.budget


def test_small_budget_forces_remaining_positions():
    positions = _caterpillar(3)
    result = calculate_subordinate_counts(positions, iteration_factor=1)

    d = result.diagnostics
    assert d.forced, "expected partial resolution under a tiny budget"
    assert d.processed == len(positions)
    for p in positions:
        assert result.total(p.code) >= result.direct(p.code)


def test_self_reporter_is_a_root_and_reported():
    boss = Position(code=_code(1), row_number=1, reports_to=_code(1))
    sub = _pos(2, reports_to=1)
    result = calculate_subordinate_counts([boss, sub])

    assert result.diagnostics.self_reporters == [boss.code]
    assert result.direct(boss.code) == 1
    assert result.total(boss.code) == 1
    assert result.diagnostics.forced == []


def test_dangling_supervisor_is_a_broken_chain():
    a = _pos(1, reports_to=99)
    b = _pos(2, reports_to=1)
    result = calculate_subordinate_counts([a, b])

    assert result.diagnostics.broken_chains == [(a.code, _code(99))]
    assert result.total(a.code) == 1
    assert _code(99) not in result.counts
    assert result.total(_code(99)) == 0


def test_invalid_codes_are_not_nodes():
    junk = Position(code="Vacant - see notes", row_number=5, reports_to=_code(1))
    boss = _pos(1)
    points_at_junk = Position(code=_code(2), row_number=2, reports_to="TBD")
    result = calculate_subordinate_counts([boss, junk, points_at_junk])

    assert set(result.counts) == {boss.code, points_at_junk.code}
    assert result.direct(boss.code) == 0
    assert result.diagnostics.broken_chains == []


def test_empty_roster():
    result = calculate_subordinate_counts([])
    assert result.counts == {}
    assert result.diagnostics.algorithm == "empty"


def test_recursive_depth_limit_is_flagged():
    ring = [_pos(1, reports_to=3), _pos(2, reports_to=1), _pos(3, reports_to=2)]
    result = count_subordinates_recursive(ring, max_depth=1)

    assert result.diagnostics.depth_limited
    for p in ring:
        assert result.total(p.code) >= result.direct(p.code)


def test_add_subordinate_counts_keeps_order_and_originals():
    positions = [
        _pos(2, reports_to=1),
        Position(code="n/a", row_number=9),
        _pos(1),
    ]
    enriched, result = add_subordinate_counts(positions)

    assert [p.row_number for p in enriched] == [2, 9, 1]
    assert enriched[2].direct_subordinates == 1
    assert enriched[2].total_subordinates == 1
    assert enriched[1].direct_subordinates == 0
    assert enriched[1].total_subordinates == 0
    # inputs are frozen and untouched
    assert positions[2].total_subordinates == 0
    assert result.diagnostics.positions == 2


def test_summary_lines_mention_forced_and_data_issues():
    x, y, leaf = _pos(1, reports_to=2), _pos(2, reports_to=1), _pos(3, reports_to=1)
    dangling = _pos(4, reports_to=77)
    lines = calculate_subordinate_counts([x, y, leaf, dangling]).diagnostics.summary_lines()

    assert lines[0].startswith("Processed 4 of 4 positions (queue")
    assert any("partial counts" in line for line in lines)
    assert any("1 broken chains" in line for line in lines)
