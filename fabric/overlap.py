"""
Overlap Engine: Coverage Grid + Isolation

Replay every claim onto an occupancy grid and read the answers off it:
  - overlap area: number of squares claimed two or more times
  - isolated claim: the claim that intersects no other claim

The grid is built per call and discarded; there is no shared state.

The grid is coordinate-compressed. Each axis is cut at claim edges into
contiguous half-open bands [edges[i], edges[i+1]), so a cell stands for a
band_height x band_width block of unit squares that all share one occupancy
count. Where an axis is short enough, its edges are simply every integer and
the bands are single unit squares. Memory therefore depends on the claims,
never on how far from the origin they sit.

All grid operations use vectorized NumPy primitives:
- np.searchsorted to map claim edges onto bands
- a 2-D difference array + np.cumsum to replay every claim at once
- skimage.measure.label for contested patches
"""

import logging
from itertools import combinations
from typing import Iterable, List, Optional, Sequence, Set, Tuple

import numpy as np
from skimage.measure import label as skimage_label

from fabric.rect import Rect, covered_squares, intersection, intersects

logger = logging.getLogger(__name__)

COVERAGE_DTYPE = np.int32
EDGE_DTYPE = np.int64


def _axis_edges(starts: np.ndarray, stops: np.ndarray) -> np.ndarray:
    """
    Band edges along one axis for half-open claim extents [start, stop).

    Uses every integer across the span when that is no more edges than the
    distinct claim edges; otherwise only the distinct claim edges.
    """
    compressed = np.unique(np.concatenate([starts, stops]))
    lo, hi = int(compressed[0]), int(compressed[-1])
    if hi - lo + 1 <= compressed.size:
        return np.arange(lo, hi + 1, dtype=EDGE_DTYPE)
    return compressed.astype(EDGE_DTYPE)


def _edge_index(edges: np.ndarray, value: int) -> int:
    i = int(np.searchsorted(edges, value))
    if i >= edges.size or int(edges[i]) != value:
        raise ValueError(f"Coordinate {value} is not a band edge of this coverage")
    return i


class Coverage:
    """
    Occupancy counts over compressed bands.

    Attributes:
        xs: Column band edges, length W+1 (empty for no claims)
        ys: Row band edges, length H+1 (empty for no claims)
        counts: int32 array (H, W); counts[r, c] is the number of claims
                covering every unit square of band cell (r, c)
    """

    def __init__(self, xs: np.ndarray, ys: np.ndarray, counts: np.ndarray):
        self.xs = np.asarray(xs, dtype=EDGE_DTYPE)
        self.ys = np.asarray(ys, dtype=EDGE_DTYPE)
        self.counts = np.asarray(counts, dtype=COVERAGE_DTYPE)

        expected = (max(self.ys.size - 1, 0), max(self.xs.size - 1, 0))
        if self.counts.shape != expected:
            raise ValueError(
                f"Counts shape {self.counts.shape} does not match band edges, "
                f"expected {expected}"
            )

    @classmethod
    def empty(cls) -> "Coverage":
        return cls(
            np.zeros(0, dtype=EDGE_DTYPE),
            np.zeros(0, dtype=EDGE_DTYPE),
            np.zeros((0, 0), dtype=COVERAGE_DTYPE),
        )

    @property
    def shape(self) -> Tuple[int, int]:
        return self.counts.shape

    def cell_areas(self) -> np.ndarray:
        """Unit squares per band cell, (H, W) int64."""
        return np.outer(np.diff(self.ys), np.diff(self.xs))

    def count_at(self, x: int, y: int) -> int:
        """Number of claims covering unit square (x, y); 0 outside the grid."""
        c = int(np.searchsorted(self.xs, x, side="right")) - 1
        r = int(np.searchsorted(self.ys, y, side="right")) - 1
        H, W = self.shape
        if not (0 <= r < H and 0 <= c < W):
            return 0
        return int(self.counts[r, c])

    def block(self, rect: Rect) -> np.ndarray:
        """
        Counts of the band cells covered by rect.

        Raises:
            ValueError: if rect's sides are not band edges (rect was not part
                of the input this coverage was built from)
        """
        c0 = _edge_index(self.xs, rect.x)
        c1 = _edge_index(self.xs, rect.right + 1)
        r0 = _edge_index(self.ys, rect.y)
        r1 = _edge_index(self.ys, rect.bottom + 1)
        return self.counts[r0:r1, c0:c1]

    def project(self, xs: np.ndarray, ys: np.ndarray) -> np.ndarray:
        """
        Counts re-expressed on finer band edges xs, ys.

        xs and ys must contain this coverage's edges; cells outside this
        coverage's span get 0.
        """
        H, W = self.shape
        out = np.zeros((max(ys.size - 1, 0), max(xs.size - 1, 0)), dtype=COVERAGE_DTYPE)
        if H == 0 or W == 0 or out.size == 0:
            return out

        cols = np.searchsorted(self.xs, xs[:-1], side="right") - 1
        rows = np.searchsorted(self.ys, ys[:-1], side="right") - 1
        col_ok = (cols >= 0) & (cols < W)
        row_ok = (rows >= 0) & (rows < H)

        out[np.ix_(row_ok, col_ok)] = self.counts[np.ix_(rows[row_ok], cols[col_ok])]
        return out

    def __eq__(self, other):
        if not isinstance(other, Coverage):
            return NotImplemented
        xs = np.union1d(self.xs, other.xs)
        ys = np.union1d(self.ys, other.ys)
        return np.array_equal(self.project(xs, ys), other.project(xs, ys))

    __hash__ = None

    def __repr__(self):
        return f"Coverage(shape={self.shape}, max_occupancy={max_occupancy(self)})"


def build_coverage(rects: Sequence[Rect]) -> Coverage:
    """
    Build the occupancy grid for a collection of claims.

    Args:
        rects: Claims (order irrelevant, duplicate ids processed independently)

    Returns:
        Coverage whose count for every unit square equals the number of
        claims covering it
    """
    if len(rects) == 0:
        return Coverage.empty()

    x0 = np.array([r.x for r in rects], dtype=EDGE_DTYPE)
    x1 = np.array([r.right + 1 for r in rects], dtype=EDGE_DTYPE)
    y0 = np.array([r.y for r in rects], dtype=EDGE_DTYPE)
    y1 = np.array([r.bottom + 1 for r in rects], dtype=EDGE_DTYPE)

    # Step 1: band edges per axis
    xs = _axis_edges(x0, x1)
    ys = _axis_edges(y0, y1)

    # Step 2: claim sides -> band indices
    c0, c1 = np.searchsorted(xs, x0), np.searchsorted(xs, x1)
    r0, r1 = np.searchsorted(ys, y0), np.searchsorted(ys, y1)

    # Step 3: 2-D difference array, one +1/-1 corner set per claim
    diff = np.zeros((ys.size, xs.size), dtype=EDGE_DTYPE)
    np.add.at(diff, (r0, c0), 1)
    np.add.at(diff, (r0, c1), -1)
    np.add.at(diff, (r1, c0), -1)
    np.add.at(diff, (r1, c1), 1)

    # Step 4: prefix sums recover the occupancy of every band cell
    counts = diff.cumsum(axis=0).cumsum(axis=1)[:-1, :-1]

    coverage = Coverage(xs, ys, counts)
    logger.debug(f"Built coverage {coverage.shape} from {len(rects)} claims")
    return coverage


def merge_coverage(coverages: Iterable[Coverage]) -> Coverage:
    """
    Sum of coverages built from disjoint batches of claims.

    Each coverage is projected onto the union of all band edges and the
    counts are added cell by cell. The merge is associative and commutative,
    so merging the coverages of any partition of the input equals
    build_coverage over the whole input.

    Args:
        coverages: Coverages to add

    Returns:
        merged: Coverage over the union of the inputs' spans
    """
    parts = [c for c in coverages if c.counts.size]
    if not parts:
        return Coverage.empty()

    xs = np.unique(np.concatenate([c.xs for c in parts]))
    ys = np.unique(np.concatenate([c.ys for c in parts]))

    counts = np.zeros((ys.size - 1, xs.size - 1), dtype=COVERAGE_DTYPE)
    for c in parts:
        counts += c.project(xs, ys)

    return Coverage(xs, ys, counts)


def covered_area_overlap(rects: Sequence[Rect]) -> int:
    """
    Number of unit squares covered by two or more claims.

    Counting-grid semantics: a square covered by three claims counts once.
    No claims or a single claim -> 0.
    """
    return overlap_area(build_coverage(rects))


def overlap_area(coverage: Coverage) -> int:
    """Number of unit squares with occupancy strictly greater than 1."""
    contested = coverage.counts > 1
    return int(coverage.cell_areas()[contested].sum())


def covered_area_overlap_pairwise(rects: Sequence[Rect]) -> int:
    """
    Overlap area via pairwise intersection.

    Each unordered pair of claims (by position, so equal claims are still
    compared) contributes the squares of its intersection to a set. The set
    deduplicates squares shared by three or more claims, so the result always
    equals covered_area_overlap. O(n^2) pairs plus intersection area.
    """
    holes: Set[Tuple[int, int]] = set()

    for a, b in combinations(rects, 2):
        shared = intersection(a, b)
        if shared is not None:
            holes.update(covered_squares(shared))

    return len(holes)


def find_isolated(rects: Sequence[Rect]) -> Optional[Rect]:
    """
    First claim (input order) that intersects no other claim.

    A claim is never compared with itself; two claims with identical
    geometry at different positions in the input do overlap each other.

    Args:
        rects: Claims

    Returns:
        The isolated claim itself (its id may be None), or None if no claim
        is isolated or the input is empty. If several are isolated, which one
        is returned is not part of the contract.
    """
    for i, rect in enumerate(rects):
        if all(
            not intersects(rect, other)
            for j, other in enumerate(rects)
            if j != i
        ):
            logger.debug(f"Isolated claim found: {rect}")
            return rect

    return None


def isolated_on_grid(coverage: Coverage, rect: Rect) -> bool:
    """
    True iff every square of rect has occupancy exactly 1.

    coverage must be built from an input containing rect; then this agrees
    with the pairwise test used by find_isolated.
    """
    return bool(np.all(coverage.block(rect) == 1))


def isolated_rects(rects: Sequence[Rect]) -> List[Rect]:
    """Every claim isolated on the shared coverage grid, in input order."""
    coverage = build_coverage(rects)
    return [rect for rect in rects if isolated_on_grid(coverage, rect)]


def max_occupancy(coverage: Coverage) -> int:
    """Highest number of claims stacked on a single square (0 for no claims)."""
    if coverage.counts.size == 0:
        return 0
    return int(coverage.counts.max())


def contested_regions(coverage: Coverage) -> int:
    """
    Number of 4-connected patches of squares claimed two or more times.

    Bands tile their span without gaps, so two cells are edge-adjacent in
    the compressed grid exactly when their unit squares are.

    Args:
        coverage: Occupancy grid

    Returns:
        Count of connected components of (counts > 1)
    """
    if coverage.counts.size == 0:
        return 0

    mask = (coverage.counts > 1).astype(np.uint8)

    # 4-connected component labeling; label 0 is background
    labels = skimage_label(mask, connectivity=1)
    return int(labels.max())
