"""
K-means clustering of RGB samples with k-means++ style seeding.

All stages operate on a single `Context`, which owns the sample, label and
centroid arrays of one quantization run. Stages mutate the context in place:

    ctx = Context.create(width, height, pixels, k)
    init_centroids(ctx, np.random.default_rng(seed))
    result = converge(ctx)
"""
import operator
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

import numpy as np

from ciq.errors import AllocationError, DegenerateInputError, FormatError

MAX_ITERS = 100        # upper bound on assign/update rounds
EPSILON = 8            # squared distance a centroid may move and still count as stable
MAX_CLUSTERS = 1 << 16

# Upper bound on sample x centroid distances held in memory at once by the assigner
ASSIGN_CHUNK_ELEMENTS = 1 << 20

SEED_STRATEGIES = ("recent", "canonical")


def squared_distance(a, b):
    """
    Sum of squared per-channel differences between colors `a` and `b`.

    Broadcasts over leading axes, so it serves both single triples (returns an
    int) and whole sample arrays (returns an int64 array). No square root is
    taken; the result is only ever compared.
    """
    diff = np.asarray(a, dtype=np.int64) - np.asarray(b, dtype=np.int64)
    dist = np.sum(diff * diff, axis=-1)
    if np.ndim(dist) == 0:
        return int(dist)
    return dist


def validate_cluster_count(k: int, size: int) -> int:
    k = operator.index(k)
    if k <= 0:
        raise DegenerateInputError(f"Number of clusters must be positive, got {k}.")
    if k > MAX_CLUSTERS:
        raise DegenerateInputError(f"Number of clusters ({k}) exceeds the supported maximum of {MAX_CLUSTERS}.")
    if k > size:
        raise DegenerateInputError(f"Number of clusters ({k}) exceeds the number of samples ({size}).")
    return k


@dataclass
class Context:
    """
    State of one quantization run.

    `samples` holds one RGB row per pixel in row-major scan order, `labels`
    the cluster index of each sample (-1 until the first assignment) and
    `centroids` the K cluster colors. Centroid rows are updated in place and
    keep their index for the whole run.
    """
    width: int
    height: int
    k: int
    samples: np.ndarray
    labels: np.ndarray
    centroids: np.ndarray

    @property
    def size(self) -> int:
        return self.samples.shape[0]

    @classmethod
    def create(cls, width: int, height: int, pixels, k: int) -> "Context":
        if width <= 0 or height <= 0:
            raise DegenerateInputError(f"Image dimensions must be positive, got {width}x{height}.")
        size = width * height
        k = validate_cluster_count(k, size)

        pixels = np.asarray(pixels)
        if pixels.size != size * 3:
            raise FormatError(f"Expected {size} RGB samples for a {width}x{height} image, got {pixels.size // 3}.")
        if pixels.size and (pixels.min() < 0 or pixels.max() > 255):
            raise FormatError("Sample channels must lie in [0, 255].")

        try:
            samples = pixels.reshape(size, 3).astype(np.int64)
            labels = np.full(size, -1, dtype=np.int64)
            centroids = np.zeros((k, 3), dtype=np.int64)
        except MemoryError as e:
            raise AllocationError(f"Could not allocate arrays for {size} samples and {k} clusters.") from e

        return cls(width=width, height=height, k=k, samples=samples, labels=labels, centroids=centroids)


def _draw_weighted(weights: np.ndarray, chosen: np.ndarray, rng: np.random.Generator) -> int:
    cumulative = np.cumsum(weights)
    total = int(cumulative[-1])
    if total == 0:
        # Every unchosen sample coincides with the reference centroid(s).
        return int(np.flatnonzero(~chosen)[-1])

    draw = rng.random() * total
    index = min(int(np.searchsorted(cumulative, draw, side="left")), len(weights) - 1)
    if weights[index] == 0:
        # Only reachable for a draw of exactly 0 on a zero-weight leading sample.
        index += int(np.flatnonzero(weights[index:])[0])
    return index


def init_centroids(ctx: Context, rng: np.random.Generator, strategy: str = "recent") -> None:
    """
    Pick K initial centroids from the samples (k-means++ style).

    The first centroid is a uniformly random sample. Each further centroid is
    drawn with probability proportional to a sample's squared distance to a
    reference:

    - "recent": the most recently chosen centroid only. Cheaper, and the
      behaviour of the classic ciq tool.
    - "canonical": the nearest of all centroids chosen so far (k-means++).

    A sample is never chosen twice, though duplicate pixel colors may still
    produce centroids of equal color.
    """
    if strategy not in SEED_STRATEGIES:
        raise ValueError(f"Unknown seeding strategy '{strategy}'. Expected one of: {', '.join(SEED_STRATEGIES)}.")

    try:
        chosen = np.zeros(ctx.size, dtype=bool)
        nearest: Optional[np.ndarray] = None

        index = int(rng.integers(ctx.size))
        chosen[index] = True
        ctx.centroids[0] = ctx.samples[index]

        for i in range(1, ctx.k):
            weights = squared_distance(ctx.samples, ctx.centroids[i - 1])
            if strategy == "canonical":
                nearest = weights if nearest is None else np.minimum(nearest, weights)
                weights = nearest.copy()
            weights[chosen] = 0

            index = _draw_weighted(weights, chosen, rng)
            chosen[index] = True
            ctx.centroids[i] = ctx.samples[index]
    except MemoryError as e:
        raise AllocationError(f"Could not allocate seeding scratch space for {ctx.size} samples.") from e


def assign_clusters(ctx: Context) -> None:
    """Label every sample with the index of its nearest centroid (lowest index wins ties)."""
    rows = max(1, ASSIGN_CHUNK_ELEMENTS // ctx.k)
    centroids = ctx.centroids[np.newaxis, :, :]
    try:
        for start in range(0, ctx.size, rows):
            stop = min(start + rows, ctx.size)
            dist = squared_distance(ctx.samples[start:stop, np.newaxis, :], centroids)
            ctx.labels[start:stop] = np.argmin(dist, axis=1)
    except MemoryError as e:
        raise AllocationError(f"Could not allocate distance scratch space for {rows} x {ctx.k} entries.") from e


def update_centroids(ctx: Context, threshold: int = EPSILON) -> bool:
    """
    Move every centroid to the mean of its members and report whether any moved.

    Means are truncated to integers. A centroid with no members keeps its
    color. Returns True if at least one centroid moved by a squared distance
    greater than `threshold`.
    """
    if ctx.size and ctx.labels.min() < 0:
        raise ValueError("Samples must be assigned to clusters before centroids can be updated.")

    counts = np.bincount(ctx.labels, minlength=ctx.k)
    sums = np.stack(
        [np.bincount(ctx.labels, weights=ctx.samples[:, channel], minlength=ctx.k) for channel in range(3)],
        axis=1,
    )
    # Channel sums are integral, rint only strips float noise before the integer division.
    sums = np.rint(sums).astype(np.int64)

    previous = ctx.centroids.copy()
    occupied = counts > 0
    ctx.centroids[occupied] = sums[occupied] // counts[occupied, np.newaxis]

    moved = squared_distance(previous, ctx.centroids)
    return bool(np.any(moved > threshold))


class ConvergenceState(Enum):
    STABLE = "stable"
    ITERATION_LIMIT_REACHED = "iteration_limit_reached"


@dataclass
class ConvergenceResult:
    iterations: int
    state: ConvergenceState

    @property
    def converged(self) -> bool:
        return self.state is ConvergenceState.STABLE


def converge(
    ctx: Context,
    max_iters: int = MAX_ITERS,
    threshold: int = EPSILON,
    on_iteration: Optional[Callable[[int, bool], None]] = None,
) -> ConvergenceResult:
    """
    Alternate assignment and update until the centroids are stable or
    `max_iters` rounds have run. Both outcomes leave a usable clustering.
    """
    if max_iters < 1:
        raise ValueError(f"max_iters must be at least 1, got {max_iters}.")

    for iteration in range(1, max_iters + 1):
        assign_clusters(ctx)
        changed = update_centroids(ctx, threshold)
        if on_iteration is not None:
            on_iteration(iteration, changed)
        if not changed:
            return ConvergenceResult(iteration, ConvergenceState.STABLE)
    return ConvergenceResult(max_iters, ConvergenceState.ITERATION_LIMIT_REACHED)
