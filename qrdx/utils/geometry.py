"""Geometry helpers for corner and finder-pattern math."""

import math
from typing import Iterable, Sequence, Tuple

def center_distance(a: Tuple[float, float], b: Tuple[float, float]) -> float:
    """Euclidean distance between two points."""
    return math.hypot(a[0] - b[0], a[1] - b[1])

def right_triangle_fit(a: Tuple[float, float], b: Tuple[float, float],
                       c: Tuple[float, float]) -> Tuple[float, float]:
    """How closely three points form an isosceles-ish right angle.

    The longest pairwise distance is taken as the hypotenuse candidate and
    the other two as legs.

    Returns:
        (diagonal_error, leg_ratio) where diagonal_error is the relative
        error of the hypotenuse against sqrt(leg1**2 + leg2**2) and
        leg_ratio is min(leg)/max(leg). Degenerate triangles give
        (inf, 0.0).
    """
    distances = sorted(
        (center_distance(a, b), center_distance(a, c), center_distance(b, c)),
        reverse=True,
    )
    hypotenuse, leg1, leg2 = distances
    expected = math.sqrt(leg1 * leg1 + leg2 * leg2)
    if expected == 0 or max(leg1, leg2) == 0:
        return math.inf, 0.0
    diagonal_error = abs(hypotenuse - expected) / expected
    leg_ratio = min(leg1, leg2) / max(leg1, leg2)
    return diagonal_error, leg_ratio

def bounding_box(points: Iterable[Sequence[float]]) -> Tuple[float, float, float, float]:
    """(x, y, width, height) of the axis-aligned box around ``points``."""
    pts = list(points)
    xs = [p[0] for p in pts]
    ys = [p[1] for p in pts]
    return min(xs), min(ys), max(xs) - min(xs), max(ys) - min(ys)
