"""
Topological accumulation scheduler (Kahn's algorithm) and finalizer.

A cell is pending while its dependency count is positive, ready once it
reaches zero and sits in the queue, and finalized after it is dequeued. On
dequeue the cell adds its own contribution to its register, which by then
already holds every upstream delivery, and forwards the total downstream.

Kernels drain at most ``max_steps`` cells per call and hand the queue
cursors back to Python, which reports progress and honours cancellation
between chunks. Queue order never affects the result: each cell is enqueued
exactly once, when its last upstream edge is delivered.
"""

import logging

import numpy as np
from numba import jit

from .context import AccumulationContext
from .errors import CycleDetected
from .grid import D8X, D8Y

logger = logging.getLogger(__name__)

# Stuck cells listed in a CycleDetected message
_CYCLE_SAMPLE = 5


@jit(nopython=True, cache=True)
def _drain_directions_jit(
    dirs: np.ndarray,
    sources: np.ndarray,
    valid: np.ndarray,
    deps: np.ndarray,
    accum: np.ndarray,
    weights: np.ndarray,
    use_weights: bool,
    queue: np.ndarray,
    head: int,
    tail: int,
    width: int,
    height: int,
    max_steps: int,
):
    """
    Drain up to ``max_steps`` cells of a single-direction flow field.

    All arrays are flat registers over the cell index space. ``queue`` is a
    preallocated FIFO: ``queue[head:tail]`` holds ready cells.

    Returns
    -------
    (head, tail) after the chunk
    """
    steps = 0
    while head < tail and steps < max_steps:
        ci = queue[head]
        head += 1
        steps += 1

        # Self-contribution lands only now, after all upstream deliveries
        if use_weights:
            accum[ci] += weights[ci]
        else:
            accum[ci] += 1

        if not sources[ci]:
            continue
        n = dirs[ci]
        if n == 0:
            continue

        nx = ci % width + D8X[n]
        ny = ci // width + D8Y[n]
        if nx < 0 or nx >= width or ny < 0 or ny >= height:
            continue
        ni = ny * width + nx
        if not valid[ni]:
            continue

        accum[ni] += accum[ci]
        deps[ni] -= 1
        if deps[ni] == 0:
            queue[tail] = ni
            tail += 1

    return head, tail


@jit(nopython=True, cache=True)
def _drain_proportions_jit(
    props: np.ndarray,
    sources: np.ndarray,
    valid: np.ndarray,
    deps: np.ndarray,
    accum: np.ndarray,
    weights: np.ndarray,
    use_weights: bool,
    queue: np.ndarray,
    head: int,
    tail: int,
    width: int,
    height: int,
    max_steps: int,
):
    """
    Drain up to ``max_steps`` cells of a proportional flow field.

    Identical to the single-direction drain except that each cell fans out to
    every neighbour with a positive fraction, delivering ``accum * fraction``.
    Fractions summing below one lose the remainder.
    """
    steps = 0
    while head < tail and steps < max_steps:
        ci = queue[head]
        head += 1
        steps += 1

        if use_weights:
            accum[ci] += weights[ci]
        else:
            accum[ci] += 1.0

        if not sources[ci]:
            continue

        cx = ci % width
        cy = ci // width
        c_accum = accum[ci]
        for n in range(1, 9):
            f = props[ci, n - 1]
            if f <= 0.0:
                continue
            nx = cx + D8X[n]
            ny = cy + D8Y[n]
            if nx < 0 or nx >= width or ny < 0 or ny >= height:
                continue
            ni = ny * width + nx
            if not valid[ni]:
                continue

            accum[ni] += c_accum * f
            deps[ni] -= 1
            if deps[ni] == 0:
                queue[tail] = ni
                tail += 1

    return head, tail


def drain(
    kernel,
    field: np.ndarray,
    sources: np.ndarray,
    valid: np.ndarray,
    deps: np.ndarray,
    accum: np.ndarray,
    weights: np.ndarray | None,
    context: AccumulationContext,
) -> None:
    """
    Run the ready queue to exhaustion, chunk by chunk.

    Parameters
    ----------
    kernel : callable
        ``_drain_directions_jit`` or ``_drain_proportions_jit``
    field : np.ndarray
        Flat direction register, or ``(cells, 8)`` proportion register
    sources, valid : np.ndarray (bool, 2-D)
    deps : np.ndarray (int8, 2-D)
        Dependency counts (modified in-place)
    accum : np.ndarray (2-D)
        Zero-initialized accumulation register (modified in-place)
    weights : np.ndarray or None
        Per-cell self-contribution; None means one unit per cell
    context : AccumulationContext

    Raises
    ------
    CycleDetected
        If any valid cell still has pending dependencies when the queue empties
    RunCancelled
        If the context's cancel event is set between chunks
    """
    height, width = valid.shape
    flat_valid = valid.ravel()
    flat_deps = deps.reshape(-1)
    flat_accum = accum.reshape(-1)
    flat_sources = sources.ravel()

    use_weights = weights is not None
    if use_weights:
        flat_weights = np.ascontiguousarray(weights, dtype=accum.dtype).ravel()
    else:
        flat_weights = np.zeros(1, dtype=accum.dtype)

    total = int(flat_valid.sum())
    queue = np.empty(total, dtype=np.int64)
    seeds = np.flatnonzero(flat_valid & (flat_deps == 0))
    queue[: seeds.size] = seeds
    head, tail = 0, int(seeds.size)

    context.logger.debug("Source cells found = %d", seeds.size)
    chunk = max(1, int(context.chunk_size))

    while head < tail:
        head, tail = kernel(
            field,
            flat_sources,
            flat_valid,
            flat_deps,
            flat_accum,
            flat_weights,
            use_weights,
            queue,
            head,
            tail,
            width,
            height,
            chunk,
        )
        context.report(int(head), total)
        context.check_cancelled()

    if head < total:
        stuck = np.flatnonzero(flat_valid & (flat_deps > 0))
        cells = [(int(i // width), int(i % width)) for i in stuck[:_CYCLE_SAMPLE]]
        raise CycleDetected(total - int(head), cells)


def finalize(accum: np.ndarray, valid: np.ndarray, out_nodata) -> np.ndarray:
    """Stamp the output sentinel onto every no-data cell. Last mutation of a run."""
    accum[~valid] = out_nodata
    return accum
