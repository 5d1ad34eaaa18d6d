"""
Flow-field providers: elevation grid -> direction or proportion grid.

Each provider is registered in ``FLOW_METHODS`` under a name and tagged with
the kind of field it produces, so callers pick a routing model by name:

    method = get_flow_method("freeman")
    field = method.compute(dem, exponent=1.1)

Single-direction providers return a uint8 grid of codes 0..8 (no-data = 255).
Proportional providers return a float32 ``(rows, cols, 8)`` grid whose
channel ``k`` holds the fraction sent toward direction code ``k + 1``
(no-data = NaN). Only in-grid, valid neighbours receive flow; a cell with no
lower neighbour is terminal (NO_FLOW, or all-zero fractions).

The DEM should be conditioned beforehand; providers do not fill or breach.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Literal

import numpy as np
from numba import jit, prange

from src import config
from .errors import PreconditionViolation
from .grid import D4_CODES, D8_CODES, D8_DISTANCE, D8X, D8Y, RasterGrid, as_grid

logger = logging.getLogger(__name__)

# Contour length crossed toward each neighbour (Quinn et al. 1991), index = code
_CONTOUR_LENGTH = np.array(
    [0.0, 0.5, np.sqrt(2.0) / 4, 0.5, np.sqrt(2.0) / 4, 0.5, np.sqrt(2.0) / 4, 0.5, np.sqrt(2.0) / 4],
    dtype=np.float64,
)

# Tarboton triangular facets as (cardinal code, diagonal code)
_FACETS = np.array(
    [(5, 4), (3, 4), (3, 2), (1, 2), (1, 8), (7, 8), (7, 6), (5, 6)],
    dtype=np.int64,
)


@jit(nopython=True, parallel=True, cache=True)
def _steepest_descent_jit(
    dem: np.ndarray, valid: np.ndarray, codes: np.ndarray, out: np.ndarray
) -> None:
    """
    Single-direction steepest descent over the neighbour codes in ``codes``.

    Slope is elevation drop over distance. Ties keep the first code in
    ``codes``. Cells with no strictly lower neighbour get NO_FLOW.
    """
    rows, cols = dem.shape
    for y in prange(rows):
        for x in range(cols):
            if not valid[y, x]:
                continue
            e0 = dem[y, x]
            best = 0
            max_slope = 0.0
            for k in range(codes.size):
                n = codes[k]
                nx = x + D8X[n]
                ny = y + D8Y[n]
                if nx < 0 or nx >= cols or ny < 0 or ny >= rows:
                    continue
                if not valid[ny, nx]:
                    continue
                slope = (e0 - dem[ny, nx]) / D8_DISTANCE[n]
                if slope > max_slope:
                    max_slope = slope
                    best = n
            out[y, x] = best


@jit(nopython=True, parallel=True, cache=True)
def _multiple_flow_jit(
    dem: np.ndarray,
    valid: np.ndarray,
    exponent: float,
    use_contour: bool,
    out: np.ndarray,
) -> None:
    """
    Multiple-flow-direction fractions.

    Each lower neighbour gets weight ``tan(beta) ** exponent``, optionally
    scaled by the contour length crossed toward it. Weights are normalized
    to sum to one.
    """
    rows, cols = dem.shape
    for y in prange(rows):
        for x in range(cols):
            if not valid[y, x]:
                continue
            e0 = dem[y, x]
            total = 0.0
            for n in range(1, 9):
                out[y, x, n - 1] = 0.0
                nx = x + D8X[n]
                ny = y + D8Y[n]
                if nx < 0 or nx >= cols or ny < 0 or ny >= rows:
                    continue
                if not valid[ny, nx]:
                    continue
                drop = e0 - dem[ny, nx]
                if drop <= 0.0:
                    continue
                w = (drop / D8_DISTANCE[n]) ** exponent
                if use_contour:
                    w *= _CONTOUR_LENGTH[n]
                out[y, x, n - 1] = w
                total += w
            if total > 0.0:
                for k in range(8):
                    out[y, x, k] = out[y, x, k] / total


@jit(nopython=True, parallel=True, cache=True)
def _dinfinity_jit(dem: np.ndarray, valid: np.ndarray, out: np.ndarray) -> None:
    """
    Tarboton (1997) D-infinity: steepest of 8 triangular facets.

    Flow inside the winning facet is split between its cardinal and diagonal
    neighbour in proportion to the angular distance from each.
    """
    rows, cols = dem.shape
    quarter = np.pi / 4.0
    root2 = np.sqrt(2.0)
    for y in prange(rows):
        for x in range(cols):
            if not valid[y, x]:
                continue
            for k in range(8):
                out[y, x, k] = 0.0
            e0 = dem[y, x]
            s_max = 0.0
            r_max = 0.0
            f_max = -1
            for f in range(8):
                c1 = _FACETS[f, 0]
                c2 = _FACETS[f, 1]
                x1 = x + D8X[c1]
                y1 = y + D8Y[c1]
                x2 = x + D8X[c2]
                y2 = y + D8Y[c2]
                if x1 < 0 or x1 >= cols or y1 < 0 or y1 >= rows:
                    continue
                if x2 < 0 or x2 >= cols or y2 < 0 or y2 >= rows:
                    continue
                if not valid[y1, x1] or not valid[y2, x2]:
                    continue
                e1 = dem[y1, x1]
                e2 = dem[y2, x2]
                s1 = e0 - e1
                s2 = e1 - e2
                r = np.arctan2(s2, s1)
                s = np.sqrt(s1 * s1 + s2 * s2)
                if r < 0.0:
                    r = 0.0
                    s = s1
                elif r > quarter:
                    r = quarter
                    s = (e0 - e2) / root2
                if s > s_max:
                    s_max = s
                    r_max = r
                    f_max = f
            if f_max < 0:
                continue
            diagonal = r_max / quarter
            out[y, x, _FACETS[f_max, 0] - 1] = 1.0 - diagonal
            out[y, x, _FACETS[f_max, 1] - 1] += diagonal


def _prepare_dem(dem) -> tuple:
    dem = as_grid(dem)
    if dem.data.ndim != 2:
        raise PreconditionViolation(f"DEM must be 2-D, got shape {dem.data.shape}")
    valid = dem.valid_mask()
    with np.errstate(invalid="ignore"):
        valid &= np.isfinite(dem.data)
    elevations = np.where(valid, dem.data, 0.0).astype(np.float64)
    return dem, elevations, valid


def _direction_grid(dem: RasterGrid, elevations, valid, codes) -> RasterGrid:
    nodata = config.DEFAULT_DIRECTION_NODATA
    out = np.zeros(dem.shape, dtype=np.uint8)
    _steepest_descent_jit(elevations, valid, np.asarray(codes, dtype=np.int64), out)
    out[~valid] = nodata
    return RasterGrid(out, nodata=nodata, transform=dem.transform, crs=dem.crs)


def _proportion_grid(dem: RasterGrid, out: np.ndarray, valid) -> RasterGrid:
    out[~valid] = np.nan
    return RasterGrid(out.astype(np.float32), nodata=np.nan, transform=dem.transform, crs=dem.crs)


def compute_d8(dem) -> RasterGrid:
    """D8 steepest descent (O'Callaghan & Mark 1984)."""
    dem, elevations, valid = _prepare_dem(dem)
    return _direction_grid(dem, elevations, valid, D8_CODES)


def compute_d4(dem) -> RasterGrid:
    """Steepest descent restricted to the four cardinal neighbours."""
    dem, elevations, valid = _prepare_dem(dem)
    return _direction_grid(dem, elevations, valid, D4_CODES)


def compute_freeman(dem, exponent: float = 1.1) -> RasterGrid:
    """Freeman (1991) multiple flow direction: fractions ~ tan(beta) ** exponent."""
    dem, elevations, valid = _prepare_dem(dem)
    out = np.zeros(dem.shape + (8,), dtype=np.float64)
    _multiple_flow_jit(elevations, valid, float(exponent), False, out)
    return _proportion_grid(dem, out, valid)


def compute_holmgren(dem, exponent: float = 4.0) -> RasterGrid:
    """Holmgren (1994): fractions ~ tan(beta) ** exponent * contour length."""
    dem, elevations, valid = _prepare_dem(dem)
    out = np.zeros(dem.shape + (8,), dtype=np.float64)
    _multiple_flow_jit(elevations, valid, float(exponent), True, out)
    return _proportion_grid(dem, out, valid)


def compute_quinn(dem) -> RasterGrid:
    """Quinn et al. (1991): Holmgren with exponent 1."""
    return compute_holmgren(dem, exponent=1.0)


def compute_tarboton(dem) -> RasterGrid:
    """Tarboton (1997) D-infinity, expressed as two-neighbour proportions."""
    dem, elevations, valid = _prepare_dem(dem)
    out = np.zeros(dem.shape + (8,), dtype=np.float64)
    _dinfinity_jit(elevations, valid, out)
    return _proportion_grid(dem, out, valid)


@dataclass(frozen=True)
class FlowMethod:
    """A named flow-field provider and the kind of field it produces."""

    name: str
    kind: Literal["direction", "proportion"]
    compute: Callable[..., RasterGrid]


FLOW_METHODS: Dict[str, FlowMethod] = {
    m.name: m
    for m in (
        FlowMethod("d8", "direction", compute_d8),
        FlowMethod("d4", "direction", compute_d4),
        FlowMethod("freeman", "proportion", compute_freeman),
        FlowMethod("holmgren", "proportion", compute_holmgren),
        FlowMethod("quinn", "proportion", compute_quinn),
        FlowMethod("tarboton", "proportion", compute_tarboton),
    )
}


def get_flow_method(name: str) -> FlowMethod:
    """Look up a provider by name (case-insensitive)."""
    try:
        return FLOW_METHODS[name.lower()]
    except KeyError:
        raise ValueError(
            f"Unknown flow method {name!r}; choose from {sorted(FLOW_METHODS)}"
        ) from None
