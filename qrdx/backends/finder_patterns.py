"""Finder pattern (corner eye) localization.

Recovers the three nested-square corner markers of a QR code directly from
a binarized image, independent of whether the payload decodes:

1. inverse adaptive threshold, so dark modules become foreground;
2. contours with full hierarchy;
3. area / aspect filters;
4. nesting depth of every top-level contour (a finder pattern is a ring
   around a ring around a solid square, so it nests about two levels deep);
5. merge of near-duplicate candidates;
6. exhaustive scoring of 3-combinations of the largest candidates, keeping
   the triplet that best forms a right angle.

When no triplet qualifies, the best few candidates are returned as a hint.
"""

import itertools
import logging
from typing import List, Optional, Sequence, Tuple

import cv2
import numpy as np

from ..core.entities import FinderPatternCandidate
from ..utils.geometry import center_distance, right_triangle_fit
from ..utils.image_utils import to_gray

logger = logging.getLogger(__name__)

# Binarization
THRESHOLD_BLOCK_SIZE = 25
THRESHOLD_C = 10

# Contour filters
MIN_AREA_FRACTION = 0.0005  # 0.05% of the image
MAX_AREA_FRACTION = 0.6
MIN_ASPECT_RATIO = 0.5
MAX_ASPECT_RATIO = 2.0
MAX_NESTING_DEPTH = 10

# Candidate merge: centers closer than this fraction of the larger width
MERGE_DISTANCE_FRACTION = 0.5

# Triplet search
MAX_TRIPLET_CANDIDATES = 12
AREA_RATIO_MIN = 0.2
DIAGONAL_ERROR_MAX = 0.35
LEG_RATIO_MIN = 0.4
AREA_RATIO_WEIGHT = 100
DIAGONAL_WEIGHT = 100
LEG_RATIO_WEIGHT = 50
NESTING_WEIGHT = 20

# Best-effort hint size when no triplet qualifies
FALLBACK_CANDIDATES = 6

def binarize(image: np.ndarray) -> np.ndarray:
    """Inverse adaptive Gaussian threshold: dark modules -> 255."""
    return cv2.adaptiveThreshold(
        to_gray(image), 255, cv2.ADAPTIVE_THRESH_GAUSSIAN_C, cv2.THRESH_BINARY_INV,
        THRESHOLD_BLOCK_SIZE, THRESHOLD_C
    )

def _chain_length(hierarchy: np.ndarray, start: int, link: int) -> int:
    """Follow a hierarchy link (2 = first child, 3 = parent) until -1."""
    depth = 0
    idx = hierarchy[start][link]
    while idx != -1 and depth < MAX_NESTING_DEPTH:
        depth += 1
        idx = hierarchy[idx][link]
    return depth

def extract_candidates(binary: np.ndarray) -> List[FinderPatternCandidate]:
    """Top-level contours of plausible finder-pattern size and shape."""
    contours, hierarchy = cv2.findContours(binary, cv2.RETR_TREE, cv2.CHAIN_APPROX_SIMPLE)
    if hierarchy is None or len(contours) == 0:
        return []

    hierarchy = hierarchy[0]
    img_area = float(binary.shape[0] * binary.shape[1])
    min_area = img_area * MIN_AREA_FRACTION
    max_area = img_area * MAX_AREA_FRACTION

    candidates: List[FinderPatternCandidate] = []
    for i, contour in enumerate(contours):
        area = cv2.contourArea(contour)
        if area < min_area or area > max_area:
            continue

        x, y, w, h = cv2.boundingRect(contour)
        if h == 0:
            continue
        aspect = w / float(h)
        if aspect < MIN_ASPECT_RATIO or aspect > MAX_ASPECT_RATIO:
            continue

        # Only outermost contours; inner rings are counted via nesting depth
        if hierarchy[i][3] != -1:
            continue

        candidates.append(FinderPatternCandidate(
            x=int(x),
            y=int(y),
            width=int(w),
            height=int(h),
            center_x=x + w / 2.0,
            center_y=y + h / 2.0,
            area=float(w * h),
            nesting_level=_chain_length(hierarchy, i, 2),
        ))
    return candidates

def _beats(a: FinderPatternCandidate, b: FinderPatternCandidate) -> bool:
    if a.nesting_level != b.nesting_level:
        return a.nesting_level > b.nesting_level
    return a.area > b.area

def merge_candidates(candidates: Sequence[FinderPatternCandidate]) -> List[FinderPatternCandidate]:
    """Collapse candidates whose centers nearly coincide.

    Input is processed largest-first; of two overlapping candidates the one
    with deeper nesting wins, then the larger one.
    """
    ordered = sorted(candidates, key=lambda c: c.area, reverse=True)
    grouped: List[FinderPatternCandidate] = []
    for c in ordered:
        for idx, g in enumerate(grouped):
            dist = center_distance((c.center_x, c.center_y), (g.center_x, g.center_y))
            if dist < max(c.width, g.width) * MERGE_DISTANCE_FRACTION:
                if _beats(c, g):
                    grouped[idx] = c
                break
        else:
            grouped.append(c)
    return grouped

def score_triplet(triplet: Sequence[FinderPatternCandidate]) -> Optional[float]:
    """Score three candidates, or None when they fail the geometric test."""
    areas = sorted(c.area for c in triplet)
    if areas[2] <= 0:
        return None
    area_ratio = areas[0] / areas[2]
    if area_ratio < AREA_RATIO_MIN:
        return None

    p1, p2, p3 = ((c.center_x, c.center_y) for c in triplet)
    diagonal_error, leg_ratio = right_triangle_fit(p1, p2, p3)
    if not (diagonal_error < DIAGONAL_ERROR_MAX and leg_ratio > LEG_RATIO_MIN):
        return None

    nesting = sum(c.nesting_level for c in triplet)
    return (area_ratio * AREA_RATIO_WEIGHT
            + (1 - diagonal_error) * DIAGONAL_WEIGHT
            + leg_ratio * LEG_RATIO_WEIGHT
            + nesting * NESTING_WEIGHT)

def best_triplet(candidates: Sequence[FinderPatternCandidate]
                 ) -> Tuple[Optional[Tuple[FinderPatternCandidate, ...]], float]:
    """Highest scoring triplet among the largest candidates."""
    top = sorted(candidates, key=lambda c: c.area, reverse=True)[:MAX_TRIPLET_CANDIDATES]
    best: Optional[Tuple[FinderPatternCandidate, ...]] = None
    best_score = -1.0
    for triplet in itertools.combinations(top, 3):
        score = score_triplet(triplet)
        if score is not None and score > best_score:
            best, best_score = triplet, score
    return best, best_score

def locate_finder_patterns(image: np.ndarray) -> List[FinderPatternCandidate]:
    """Find the three corner eyes of a QR code in ``image``.

    Returns exactly three candidates when a right-angle triplet is found,
    otherwise up to six best candidates (possibly none).
    """
    grouped = merge_candidates(extract_candidates(binarize(image)))
    if len(grouped) < 3:
        return grouped

    triplet, score = best_triplet(grouped)
    if triplet is not None:
        logger.debug("Finder triplet found with score %.1f", score)
        return list(triplet)

    logger.debug("No finder triplet among %d candidates", len(grouped))
    return grouped[:FALLBACK_CANDIDATES]
