"""
Bubble layout for sized circles on a fixed-height canvas.

Packed mode places the largest circle at the centre and the others tangent to
it on a ring, then scales the arrangement into the canvas. Overlap mode starts
from the packed positions and relaxes pairwise distances so circles sharing
more members sit closer (and overlap), then re-fits without enlarging.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from .data_models import CircleOverview


CANVAS_HEIGHT = 280.0
CANVAS_PADDING = 12.0
MIN_RADIUS = 28.0
MAX_RADIUS = 80.0
BUBBLE_GAP = 10.0
MAX_CHART_CIRCLES = 6

RELAX_ITERATIONS = 300
RELAX_DAMPING = 0.05
CENTERING_DECAY = 0.05


@dataclass
class Bubble:
    circle: CircleOverview
    x: float
    y: float
    r: float

    @property
    def id(self) -> str:
        return self.circle.id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.circle.id,
            "name": self.circle.name,
            "shortName": self.circle.short_name or self.circle.name,
            "count": self.circle.count,
            "x": self.x,
            "y": self.y,
            "r": self.r,
        }


def compute_radius(count: int, max_count: int) -> float:
    # linear in count so size differences read clearly
    scale = min(max(count, 0) / max(max_count, 1), 1.0)
    return MIN_RADIUS + (MAX_RADIUS - MIN_RADIUS) * scale


def select_circles(circles: Sequence[CircleOverview], limit: int = MAX_CHART_CIRCLES) -> List[CircleOverview]:
    return sorted(circles, key=lambda c: c.count, reverse=True)[:limit]


def pack_bubbles(circles: Sequence[CircleOverview]) -> List[Bubble]:
    """Logical (unscaled) placement centred on the origin."""
    selected = select_circles(circles)
    if not selected:
        return []

    max_count = selected[0].count
    primary, others = selected[0], selected[1:]
    primary_r = compute_radius(primary.count, max_count)
    bubbles = [Bubble(primary, 0.0, 0.0, primary_r)]

    if others:
        angle_step = 2 * math.pi / len(others)
        for i, circle in enumerate(others):
            r = compute_radius(circle.count, max_count)
            angle = -math.pi / 2 + angle_step * i  # start from the top
            distance = primary_r + r + BUBBLE_GAP
            bubbles.append(Bubble(circle, distance * math.cos(angle), distance * math.sin(angle), r))
    return bubbles


def _contain(bubbles: List[Bubble], canvas_width: float) -> List[Bubble]:
    for b in bubbles:
        b.r = min(b.r, canvas_width / 2, CANVAS_HEIGHT / 2)
        b.x = float(np.clip(b.x, b.r, canvas_width - b.r))
        b.y = float(np.clip(b.y, b.r, CANVAS_HEIGHT - b.r))
    return bubbles


def fit_to_canvas(bubbles: Sequence[Bubble], canvas_width: float, max_scale: float = 1.0) -> List[Bubble]:
    """Scale and centre bubbles into the padded canvas; never below MIN_RADIUS."""
    if not bubbles:
        return []

    xs = np.array([b.x for b in bubbles], dtype=float)
    ys = np.array([b.y for b in bubbles], dtype=float)
    rs = np.array([b.r for b in bubbles], dtype=float)

    min_x, max_x = float((xs - rs).min()), float((xs + rs).max())
    min_y, max_y = float((ys - rs).min()), float((ys + rs).max())
    content_w = max(max_x - min_x, 1e-9)
    content_h = max(max_y - min_y, 1e-9)

    avail_w = max(canvas_width - 2 * CANVAS_PADDING, 1e-9)
    avail_h = CANVAS_HEIGHT - 2 * CANVAS_PADDING
    scale = min(avail_w / content_w, avail_h / content_h, max_scale)

    translate_x = canvas_width / 2 - ((min_x + max_x) / 2) * scale
    translate_y = CANVAS_HEIGHT / 2 - ((min_y + max_y) / 2) * scale

    fitted = [
        Bubble(b.circle, b.x * scale + translate_x, b.y * scale + translate_y, max(b.r * scale, MIN_RADIUS))
        for b in bubbles
    ]
    return _contain(fitted, canvas_width)


def shared_fraction(a: CircleOverview, b: CircleOverview) -> float:
    """|A ∩ B| / min(countA, countB); 0 when either side has no tracked members."""
    if not a.member_ids or not b.member_ids:
        return 0.0
    smaller = min(a.count, b.count)
    if smaller <= 0:
        return 0.0
    shared = len(set(a.member_ids) & set(b.member_ids))
    return min(shared / smaller, 1.0)


def target_distance(r_a: float, r_b: float, fraction: float) -> float:
    return (r_a + r_b) * max(0.2, 1.4 - 1.2 * fraction)


def relax_overlap(
    bubbles: Sequence[Bubble],
    canvas_width: float,
    iterations: int = RELAX_ITERATIONS,
) -> List[Bubble]:
    """Pull bubbles together in proportion to shared membership, then re-fit.

    Pairwise O(n^2) per iteration; deterministic for a given input.
    """
    if not bubbles:
        return []

    n = len(bubbles)
    pos = np.array([[b.x, b.y] for b in bubbles], dtype=float)
    radii = np.array([b.r for b in bubbles], dtype=float)
    targets = np.zeros((n, n))
    for i in range(n):
        for j in range(i + 1, n):
            fraction = shared_fraction(bubbles[i].circle, bubbles[j].circle)
            targets[i, j] = targets[j, i] = target_distance(radii[i], radii[j], fraction)

    centre = np.array([canvas_width / 2, CANVAS_HEIGHT / 2])
    for _ in range(iterations):
        for i in range(n):
            for j in range(i + 1, n):
                delta = pos[j] - pos[i]
                dist = float(np.hypot(delta[0], delta[1]))
                if dist < 1e-9:
                    direction = np.array([1.0, 0.0])
                    dist = 0.0
                else:
                    direction = delta / dist
                # positive when too far apart: move both towards each other
                correction = (dist - targets[i, j]) * RELAX_DAMPING / 2
                pos[i] += direction * correction
                pos[j] -= direction * correction
        pos -= (pos.mean(axis=0) - centre) * CENTERING_DECAY

    relaxed = [Bubble(b.circle, float(p[0]), float(p[1]), b.r) for b, p in zip(bubbles, pos)]
    return fit_to_canvas(relaxed, canvas_width, max_scale=1.0)


def layout_bubbles(
    circles: Sequence[CircleOverview],
    canvas_width: float,
    overlap_mode: bool = False,
) -> List[Bubble]:
    """Final canvas positions for up to MAX_CHART_CIRCLES of the largest circles."""
    packed = fit_to_canvas(pack_bubbles(circles), canvas_width)
    if overlap_mode:
        return relax_overlap(packed, canvas_width)
    return packed


def interpolate_layouts(start: Sequence[Bubble], end: Sequence[Bubble], t: float) -> List[Bubble]:
    """Frame ``t`` of a linear transition from ``start`` to ``end``.

    Bubbles are matched by circle id; ones only in ``end`` grow from radius 0.
    """
    t = min(max(t, 0.0), 1.0)
    previous: Dict[str, Bubble] = {b.id: b for b in start}
    frames: List[Bubble] = []
    for b in end:
        s: Optional[Bubble] = previous.get(b.id)
        if s is None:
            frames.append(Bubble(b.circle, b.x, b.y, b.r * t))
            continue
        frames.append(
            Bubble(
                b.circle,
                s.x + (b.x - s.x) * t,
                s.y + (b.y - s.y) * t,
                s.r + (b.r - s.r) * t,
            )
        )
    return frames
