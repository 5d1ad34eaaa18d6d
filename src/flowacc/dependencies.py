"""
Dependency-count builder.

For every cell, counts the distinct upstream edges that route flow into it.
Counting is a gather: each target inspects its 8 neighbours and counts the
ones that point at it, so rows can be scanned in parallel with no shared
writes.

An edge ``s -> t`` is counted when ``s`` is a source cell (valid, and not a
border cell in "drain" mode), ``s`` routes toward ``t`` (direction code, or a
positive fraction), and ``t`` is in-grid and valid. The scheduler delivers
along exactly the same edges.
"""

import numpy as np
from numba import jit, prange

from .errors import PreconditionViolation
from .grid import D8X, D8Y


@jit(nopython=True, parallel=True, cache=True)
def _direction_dependencies_jit(
    dirs: np.ndarray,
    sources: np.ndarray,
    valid: np.ndarray,
    deps: np.ndarray,
    width: int,
    height: int,
) -> None:
    """
    Fill ``deps`` (flat, int8) from a flat direction register.

    Parameters
    ----------
    dirs : np.ndarray
        Direction codes 0..8 per cell (0 = NO_FLOW)
    sources : np.ndarray (bool)
        Cells allowed to contribute dependency edges
    valid : np.ndarray (bool)
        Non-no-data cells
    deps : np.ndarray (int8)
        Output counts (modified in-place)
    """
    for y in prange(height):
        for x in range(width):
            i = y * width + x
            if not valid[i]:
                deps[i] = 0
                continue
            count = 0
            for n in range(1, 9):
                # Neighbour that would reach (x, y) by moving in direction n
                sx = x - D8X[n]
                sy = y - D8Y[n]
                if sx < 0 or sx >= width or sy < 0 or sy >= height:
                    continue
                si = sy * width + sx
                if sources[si] and dirs[si] == n:
                    count += 1
            deps[i] = count


@jit(nopython=True, parallel=True, cache=True)
def _proportion_dependencies_jit(
    props: np.ndarray,
    sources: np.ndarray,
    valid: np.ndarray,
    deps: np.ndarray,
    width: int,
    height: int,
) -> None:
    """Fill ``deps`` from a flat ``(cells, 8)`` proportion register."""
    for y in prange(height):
        for x in range(width):
            i = y * width + x
            if not valid[i]:
                deps[i] = 0
                continue
            count = 0
            for n in range(1, 9):
                sx = x - D8X[n]
                sy = y - D8Y[n]
                if sx < 0 or sx >= width or sy < 0 or sy >= height:
                    continue
                si = sy * width + sx
                if sources[si] and props[si, n - 1] > 0.0:
                    count += 1
            deps[i] = count


def source_mask(valid: np.ndarray, edge_mode: str) -> np.ndarray:
    """
    Cells allowed to contribute dependency edges.

    Parameters
    ----------
    valid : np.ndarray (bool, 2-D)
        Non-no-data cells
    edge_mode : {"route", "drain"}
        "route" lets border cells route like any other cell. "drain" excludes
        border cells as sources; they still receive flow and are finalized,
        but never forward it.
    """
    if edge_mode == "route":
        return valid.copy()
    if edge_mode == "drain":
        sources = valid.copy()
        sources[0, :] = sources[-1, :] = False
        sources[:, 0] = sources[:, -1] = False
        return sources
    raise PreconditionViolation(f"edge_mode must be 'route' or 'drain', got {edge_mode!r}")


def count_direction_dependencies(
    dirs: np.ndarray, valid: np.ndarray, sources: np.ndarray
) -> np.ndarray:
    """
    Count upstream edges per cell for a single-direction grid.

    Parameters
    ----------
    dirs : np.ndarray (2-D)
        Direction codes 0..8; no-data cells must already be zeroed
    valid, sources : np.ndarray (bool, 2-D)

    Returns
    -------
    np.ndarray (int8, 2-D)
        Dependency count per cell; 0 for no-data cells
    """
    height, width = dirs.shape
    deps = np.zeros(height * width, dtype=np.int8)
    _direction_dependencies_jit(
        np.ascontiguousarray(dirs).ravel(),
        np.ascontiguousarray(sources).ravel(),
        np.ascontiguousarray(valid).ravel(),
        deps,
        width,
        height,
    )
    return deps.reshape(height, width)


def count_proportion_dependencies(
    props: np.ndarray, valid: np.ndarray, sources: np.ndarray
) -> np.ndarray:
    """
    Count upstream edges per cell for a proportion grid ``(rows, cols, 8)``.

    Each positive fraction is one edge regardless of its size.
    """
    height, width = props.shape[:2]
    deps = np.zeros(height * width, dtype=np.int8)
    _proportion_dependencies_jit(
        np.ascontiguousarray(props).reshape(height * width, 8),
        np.ascontiguousarray(sources).ravel(),
        np.ascontiguousarray(valid).ravel(),
        deps,
        width,
        height,
    )
    return deps.reshape(height, width)
