import random

import pytest

from factories import leaf
from liveedit.overlap import (
    OVERLAP_THRESHOLD,
    CellBox,
    InteractionState,
    OverlapTracker,
    compute_overlap,
    select_target,
)


def box(item_id, x, y, w=1, h=1):
    return CellBox(id=item_id, x=x, y=y, w=w, h=h)


def test_disjoint_rectangles_have_zero_overlap():
    rng = random.Random(7)
    for _ in range(200):
        a = box("a", rng.randint(0, 10), rng.randint(0, 10), rng.randint(1, 4), rng.randint(1, 4))
        # b 完全在 a 的右侧或下方（半开区间，边相接不算相交）
        if rng.random() < 0.5:
            b = box("b", a.x + a.w + rng.randint(0, 3), rng.randint(0, 10), rng.randint(1, 4), rng.randint(1, 4))
        else:
            b = box("b", rng.randint(0, 10), a.y + a.h + rng.randint(0, 3), rng.randint(1, 4), rng.randint(1, 4))
        assert compute_overlap(a, b) == 0
        assert compute_overlap(b, a) == 0


def test_self_overlap_is_full():
    rng = random.Random(11)
    for _ in range(50):
        a = box("a", rng.randint(0, 10), rng.randint(0, 10), rng.randint(1, 5), rng.randint(1, 5))
        assert compute_overlap(a, a) == 100


def test_overlap_is_relative_to_dragged_area():
    wide = box("wide", 0, 0, w=2)
    small = box("small", 1, 0)
    assert compute_overlap(wide, small) == 50
    assert compute_overlap(small, wide) == 100


def test_overlap_accepts_layout_items():
    assert compute_overlap(leaf("a"), leaf("b")) == 100


def test_select_target_below_threshold_is_none():
    layout = [box("d", 0.6, 0), box("t", 0, 0)]
    assert compute_overlap(layout[0], layout[1]) == pytest.approx(40)
    assert select_target(layout, "d") is None


def test_select_target_exactly_at_threshold():
    layout = [box("d", 0, 0, w=2), box("t", 1, 0)]
    assert select_target(layout, "d") == "t"


def test_select_target_tie_prefers_first_in_list():
    layout = [box("first", 0, 0), box("d", 0, 0), box("second", 0, 0)]
    assert select_target(layout, "d") == "first"


def test_select_target_missing_dragged():
    assert select_target([box("a", 0, 0)], "nope") is None


def test_select_target_is_argmax_meeting_threshold():
    rng = random.Random(3)
    for _ in range(200):
        layout = [
            box(f"i{n}", rng.randint(0, 6) + rng.choice([0, 0.25, 0.5]), rng.randint(0, 6),
                rng.randint(1, 3), rng.randint(1, 3))
            for n in range(rng.randint(2, 8))
        ]
        dragged = layout[rng.randrange(len(layout))]

        expected, best = None, 0.0
        for cell in layout:
            if cell.id == dragged.id:
                continue
            overlap = compute_overlap(dragged, cell)
            if overlap >= OVERLAP_THRESHOLD and overlap > best:
                expected, best = cell.id, overlap

        assert select_target(layout, dragged.id) == expected


def test_tracker_emits_only_when_target_changes():
    events = []
    tracker = OverlapTracker()
    tracker.subscribe(events.append)
    state = InteractionState(dragging=True, dragged_id="d")

    on_target = [box("d", 1, 0), box("t", 1, 0)]
    off_target = [box("d", 3, 0), box("t", 1, 0)]

    assert tracker.update(state, on_target) is not None
    assert tracker.update(state, on_target) is None
    assert tracker.update(state, off_target) is not None
    assert tracker.update(state, off_target) is None

    assert [(e.previous, e.current) for e in events] == [(None, "t"), ("t", None)]
    assert state.overlap_target_id is None


def test_tracker_ignores_updates_when_not_dragging():
    tracker = OverlapTracker()
    state = InteractionState()
    assert tracker.update(state, [box("d", 0, 0), box("t", 0, 0)]) is None
    assert state.overlap_target_id is None
