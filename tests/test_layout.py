import math
import random

import pytest

from circles.data_models import CircleOverview
from circles.layout import (
    CANVAS_HEIGHT,
    MAX_CHART_CIRCLES,
    MAX_RADIUS,
    MIN_RADIUS,
    Bubble,
    compute_radius,
    interpolate_layouts,
    layout_bubbles,
    pack_bubbles,
    shared_fraction,
    target_distance,
)


TOLERANCE = 1e-9


def overview(circle_id, count, member_ids=None):
    return CircleOverview(id=circle_id, name=circle_id.title(), short_name=circle_id, count=count, member_ids=member_ids)


def _distance(a: Bubble, b: Bubble) -> float:
    return math.hypot(a.x - b.x, a.y - b.y)


def _flat(bubbles):
    return [v for b in bubbles for v in (b.x, b.y, b.r)]


def _assert_contained(bubbles, width):
    for b in bubbles:
        assert b.x - b.r >= -TOLERANCE
        assert b.x + b.r <= width + TOLERANCE
        assert b.y - b.r >= -TOLERANCE
        assert b.y + b.r <= CANVAS_HEIGHT + TOLERANCE


# -------------------------------
# Radius and packing
# -------------------------------

def test_compute_radius_is_linear_between_bounds():
    assert compute_radius(10, 10) == MAX_RADIUS
    assert compute_radius(0, 10) == MIN_RADIUS
    assert compute_radius(5, 10) == pytest.approx((MIN_RADIUS + MAX_RADIUS) / 2)
    assert compute_radius(0, 0) == MIN_RADIUS


def test_example_scenario_packed():
    circles = [overview("seven", 7), overview("three", 3), overview("eight", 8)]

    packed = pack_bubbles(circles)
    assert packed[0].id == "eight"
    assert (packed[0].x, packed[0].y) == (0.0, 0.0)
    assert packed[0].r == MAX_RADIUS
    by_id = {b.id: b for b in packed}
    assert by_id["three"].r < by_id["seven"].r
    # first ring position is straight up from the primary
    assert by_id["seven"].x == pytest.approx(0.0, abs=1e-9)
    assert by_id["seven"].y < 0

    placed = layout_bubbles(circles, 335)
    assert [b.id for b in placed] == ["eight", "seven", "three"]
    by_id = {b.id: b for b in placed}
    assert by_id["three"].r < by_id["seven"].r < by_id["eight"].r
    for i, a in enumerate(placed):
        for b in placed[i + 1 :]:
            assert _distance(a, b) >= a.r + b.r - TOLERANCE
    _assert_contained(placed, 335)


def test_ring_bubbles_start_tangent_with_gap():
    circles = [overview("a", 10), overview("b", 6), overview("c", 4), overview("d", 2)]
    packed = pack_bubbles(circles)
    primary = packed[0]
    for b in packed[1:]:
        assert _distance(primary, b) == pytest.approx(primary.r + b.r + 10.0)


def test_only_largest_circles_are_charted():
    circles = [overview(f"c{i}", i) for i in range(1, 10)]
    placed = layout_bubbles(circles, 335)
    assert len(placed) == MAX_CHART_CIRCLES
    assert {b.id for b in placed} == {f"c{i}" for i in range(4, 10)}


def test_empty_input_yields_no_bubbles():
    assert layout_bubbles([], 335) == []
    assert layout_bubbles([], 335, overlap_mode=True) == []


def test_single_circle_is_centred():
    [bubble] = layout_bubbles([overview("solo", 5)], 335)
    assert bubble.x == pytest.approx(335 / 2)
    assert bubble.y == pytest.approx(CANVAS_HEIGHT / 2)
    assert bubble.r == MAX_RADIUS


def test_bubble_to_dict():
    [bubble] = layout_bubbles([overview("solo", 5)], 335)
    assert set(bubble.to_dict()) == {"id", "name", "shortName", "count", "x", "y", "r"}


# -------------------------------
# Containment across random inputs
# -------------------------------

def _random_circles(rng):
    roster = [f"u{i}" for i in range(40)]
    circles = []
    for i in range(rng.randint(1, 9)):
        tracked = rng.random() < 0.7
        members = rng.sample(roster, rng.randint(0, 20)) if tracked else None
        count = len(members) if members is not None else rng.randint(0, 40)
        circles.append(overview(f"c{i}", count, members))
    return circles


@pytest.mark.parametrize("overlap_mode", [False, True], ids=["packed", "overlap"])
def test_layout_containment(overlap_mode):
    rng = random.Random(20250301)
    for _ in range(40):
        circles = _random_circles(rng)
        width = rng.choice([60.0, 120.0, 200.0, 335.0, 414.0, 768.0])
        placed = layout_bubbles(circles, width, overlap_mode=overlap_mode)
        assert len(placed) == min(len(circles), MAX_CHART_CIRCLES)
        _assert_contained(placed, width)


# -------------------------------
# Overlap relaxation
# -------------------------------

def test_shared_fraction_and_target_distance():
    a = overview("a", 4, ["u1", "u2", "u3", "u4"])
    b = overview("b", 2, ["u1", "u9"])
    assert shared_fraction(a, b) == 0.5
    assert shared_fraction(a, overview("c", 3)) == 0.0
    assert target_distance(10, 10, 0.0) == pytest.approx(28.0)
    assert target_distance(10, 10, 1.0) == pytest.approx(4.0)


def test_overlap_mode_pulls_sharing_circles_together():
    same = ["u1", "u2", "u3", "u4", "u5", "u6"]
    other = ["u7", "u8", "u9", "u10", "u11", "u12"]
    circles = [overview("a", 6, same), overview("b", 6, list(same)), overview("c", 6, other)]

    packed = {b.id: b for b in layout_bubbles(circles, 335)}
    relaxed = {b.id: b for b in layout_bubbles(circles, 335, overlap_mode=True)}

    assert _distance(relaxed["a"], relaxed["b"]) < _distance(packed["a"], packed["b"])
    assert _distance(relaxed["a"], relaxed["b"]) < _distance(relaxed["a"], relaxed["c"])
    assert _distance(relaxed["a"], relaxed["b"]) < relaxed["a"].r + relaxed["b"].r
    for bubble in relaxed.values():
        assert bubble.r <= packed[bubble.id].r + TOLERANCE


def test_overlap_mode_is_deterministic():
    circles = [overview("a", 5, ["u1", "u2", "u3", "u4", "u5"]), overview("b", 3, ["u1", "u2", "u9"])]
    first = [b.to_dict() for b in layout_bubbles(circles, 335, overlap_mode=True)]
    second = [b.to_dict() for b in layout_bubbles(circles, 335, overlap_mode=True)]
    assert first == second


# -------------------------------
# Transitions
# -------------------------------

def test_interpolate_layouts_endpoints_and_midpoint():
    circles = [overview("a", 6), overview("b", 4), overview("c", 3)]
    start = layout_bubbles(circles[:2], 335)
    end = layout_bubbles(circles, 335)

    at_start = {b.id: b for b in interpolate_layouts(start, end, 0.0)}
    at_end = interpolate_layouts(start, end, 1.0)
    halfway = {b.id: b for b in interpolate_layouts(start, end, 0.5)}
    before = {b.id: b for b in start}
    after = {b.id: b for b in end}

    assert at_start["a"].x == pytest.approx(before["a"].x)
    assert at_start["c"].r == 0.0
    assert _flat(at_end) == pytest.approx(_flat(end))
    assert halfway["b"].y == pytest.approx((before["b"].y + after["b"].y) / 2)
    assert halfway["c"].r == pytest.approx(after["c"].r / 2)

    clamped = interpolate_layouts(start, end, 3.0)
    assert _flat(clamped) == pytest.approx(_flat(end))
