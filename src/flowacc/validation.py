"""
Precondition checks run before any accumulation register is allocated.
"""

import logging
from typing import Dict, Optional

import numpy as np

from src import config
from .errors import OverflowRisk, PreconditionViolation
from .grid import RasterGrid, _matches

logger = logging.getLogger(__name__)

# Largest count each float register represents exactly
_FLOAT_EXACT_LIMIT = {np.dtype(np.float32): 2**24, np.dtype(np.float64): 2**53}

# Register dtypes the drain kernels are compiled for
_REGISTER_DTYPES = tuple(
    np.dtype(t)
    for t in (
        np.int8, np.int16, np.int32, np.int64,
        np.uint8, np.uint16, np.uint32, np.uint64,
        np.float32, np.float64,
    )
)

EDGE_MODES = ("route", "drain")


def _first_cell(mask: np.ndarray):
    rows, cols = np.nonzero(mask)
    return int(rows[0]), int(cols[0])


def check_same_shape(grids: Dict[str, Optional[RasterGrid]]) -> None:
    """
    Require every supplied grid to share the same (rows, cols).

    ``None`` entries are skipped so optional companions can be passed as-is.
    """
    shapes = {name: g.shape for name, g in grids.items() if g is not None}
    if len(set(shapes.values())) > 1:
        detail = ", ".join(f"{name}={shape}" for name, shape in shapes.items())
        raise PreconditionViolation(f"Grid dimensions do not match: {detail}")


def validate_directions(grid: RasterGrid) -> None:
    """
    Check that every non-no-data cell holds a direction code in 0..8.

    Float rasters (e.g. read back from GeoTIFF) are accepted when integral.
    """
    if grid.data.ndim != 2:
        raise PreconditionViolation(
            f"Direction grid must be 2-D, got shape {grid.data.shape}"
        )
    data = grid.data
    if not (np.issubdtype(data.dtype, np.integer) or np.issubdtype(data.dtype, np.floating)):
        raise PreconditionViolation(f"Direction grid has non-numeric dtype {data.dtype}")

    valid = grid.valid_mask()
    with np.errstate(invalid="ignore"):
        bad = (data < 0) | (data > 8)
        if np.issubdtype(data.dtype, np.floating):
            bad |= ~np.isfinite(data) | (data != np.floor(data))
    bad &= valid
    if bad.any():
        r, c = _first_cell(bad)
        raise PreconditionViolation(
            f"{int(bad.sum()):,} cells hold invalid direction codes; "
            f"first at (row={r}, col={c}) value={data[r, c]!r}. Expected 0..8."
        )


def validate_proportions(grid: RasterGrid, tolerance: float = config.PROPORTION_TOLERANCE) -> None:
    """
    Check the proportion invariants for every non-no-data cell.

    Fractions must be finite and in [0, 1] and sum to at most ``1 + tolerance``.
    A sum below one models loss to an unmodelled sink and is accepted.
    """
    data = grid.data
    if data.ndim != 3 or data.shape[2] != 8:
        raise PreconditionViolation(
            f"Proportion grid must have shape (rows, cols, 8), got {data.shape}"
        )
    if not np.issubdtype(data.dtype, np.floating):
        raise PreconditionViolation(f"Proportion grid must be floating point, got {data.dtype}")

    valid = grid.valid_mask()

    if grid.nodata is not None:
        partial = _matches(data, grid.nodata).any(axis=2) & valid
        if partial.any():
            r, c = _first_cell(partial)
            raise PreconditionViolation(
                f"{int(partial.sum()):,} cells are only partially no-data; "
                f"first at (row={r}, col={c})"
            )

    fractions = data[valid]
    with np.errstate(invalid="ignore"):
        bad_value = ~np.isfinite(fractions) | (fractions < 0) | (fractions > 1)
    if bad_value.any():
        cell = np.flatnonzero(bad_value.any(axis=1))[0]
        raise PreconditionViolation(
            f"Flow fractions must lie in [0, 1]; found {fractions[cell].tolist()}"
        )

    totals = fractions.sum(axis=1)
    over = totals > 1.0 + tolerance
    if over.any():
        raise PreconditionViolation(
            f"{int(over.sum()):,} cells route more than all of their flow "
            f"(max fraction sum {totals.max():.6f})"
        )


def validate_weights(weights: RasterGrid, valid: np.ndarray) -> None:
    """Weights must be finite and non-negative wherever the flow grid is valid."""
    if weights.data.ndim != 2:
        raise PreconditionViolation(f"Weight grid must be 2-D, got shape {weights.data.shape}")
    values = weights.data[valid]
    bad = ~np.isfinite(values) | (values < 0)
    if bad.any():
        raise PreconditionViolation(
            f"{int(bad.sum()):,} valid cells have non-finite or negative weights"
        )


def resolve_accum_dtype(dtype, weighted: bool, proportional: bool) -> np.dtype:
    """
    Pick the accumulation register dtype.

    Counting defaults to an unsigned 32-bit register; weighted or proportional
    runs need a floating-point register. Only 8- to 64-bit integers, float32
    and float64 are accepted.
    """
    if dtype is None:
        if weighted or proportional:
            return np.dtype(config.DEFAULT_FLOAT_DTYPE)
        return np.dtype(config.DEFAULT_COUNT_DTYPE)

    try:
        dtype = np.dtype(dtype)
    except TypeError as exc:
        raise PreconditionViolation(f"Unknown accumulation dtype {dtype!r}") from exc
    if dtype.newbyteorder("=") not in _REGISTER_DTYPES:
        supported = ", ".join(str(t) for t in _REGISTER_DTYPES)
        raise PreconditionViolation(
            f"Unsupported accumulation dtype {dtype}; choose one of {supported}"
        )
    dtype = dtype.newbyteorder("=")
    if (weighted or proportional) and not np.issubdtype(dtype, np.floating):
        raise PreconditionViolation(
            f"Weighted and proportional accumulation need a floating-point dtype, got {dtype}"
        )
    return dtype


def check_edge_mode(edge_mode: str) -> None:
    if edge_mode not in EDGE_MODES:
        raise PreconditionViolation(
            f"edge_mode must be one of {EDGE_MODES}, got {edge_mode!r}"
        )


def default_out_nodata(dtype: np.dtype):
    """Output sentinel: dtype max for unsigned integers, -1 otherwise."""
    if np.issubdtype(dtype, np.unsignedinteger):
        return np.iinfo(dtype).max
    return -1


def check_out_nodata(dtype: np.dtype, out_nodata) -> None:
    """
    Require the output sentinel to be storable in the register dtype.

    Integer registers need a finite integral sentinel inside the dtype range.
    Float registers accept NaN or any finite value within range.
    """
    try:
        value = float(out_nodata)
    except (TypeError, ValueError) as exc:
        raise PreconditionViolation(f"Output nodata {out_nodata!r} is not a number") from exc

    if np.issubdtype(dtype, np.integer):
        info = np.iinfo(dtype)
        if not np.isfinite(value) or value != np.floor(value):
            raise PreconditionViolation(
                f"Output nodata {out_nodata!r} cannot be stored in an integer {dtype} register"
            )
        if not info.min <= int(out_nodata) <= info.max:
            raise PreconditionViolation(
                f"Output nodata {out_nodata!r} is outside the {dtype} range "
                f"[{info.min}, {info.max}]"
            )
    elif np.isfinite(value) and abs(value) > np.finfo(dtype).max:
        raise PreconditionViolation(f"Output nodata {out_nodata!r} is outside the {dtype} range")


def check_capacity(dtype: np.dtype, n_valid: int, out_nodata, counting: bool) -> None:
    """
    Enforce that a counting register cannot wrap or lose exactness.

    The largest value a counting run can produce is the number of valid cells.
    For unsigned registers whose sentinel is the dtype maximum, that value is
    reserved and the limit drops by one. Float registers count exactly only up
    to 2**24 (float32) or 2**53 (float64).
    """
    if not counting:
        return

    if np.issubdtype(dtype, np.integer):
        limit = int(np.iinfo(dtype).max)
        if out_nodata is not None and int(out_nodata) == limit:
            limit -= 1
        if n_valid > limit:
            raise OverflowRisk(
                f"{n_valid:,} valid cells exceed the {dtype} accumulation limit of {limit:,}; "
                "pass a wider dtype (e.g. uint64)"
            )
    else:
        limit = _FLOAT_EXACT_LIMIT[np.dtype(dtype)]
        if n_valid > limit:
            raise OverflowRisk(
                f"{n_valid:,} valid cells exceed exact {dtype} counting ({limit:,}); "
                "use a wider float or an integer dtype"
            )
    logger.debug("Accumulation capacity ok: %d cells in %s", n_valid, dtype)
