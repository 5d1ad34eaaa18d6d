"""
Raster grid abstraction and neighbour tables.

Grids are dense numpy arrays addressed row-major: cell (x, y) lives at
``data[y, x]`` and has linear index ``i = y * width + x``. Transient
registers used by the engine are flat views over the same index space.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple, Union

import numpy as np
from rasterio import Affine

from .errors import PreconditionViolation


# ==============================================================================
# D8 DIRECTION ENCODING
# ==============================================================================
#
# Direction codes walk clockwise starting at West. Y grows downward (south).
#
#   2  3  4
#   1  x  5
#   8  7  6
#
#   0 = NO_FLOW (outlet, pit, flat or terminal cell)
#   1 = West        : (-1,  0)
#   2 = Northwest   : (-1, -1)
#   3 = North       : ( 0, -1)
#   4 = Northeast   : (+1, -1)
#   5 = East        : (+1,  0)
#   6 = Southeast   : (+1, +1)
#   7 = South       : ( 0, +1)
#   8 = Southwest   : (-1, +1)

NO_FLOW = 0

# Offsets indexed by direction code (index 0 unused)
D8X = np.array([0, -1, -1, 0, 1, 1, 1, 0, -1], dtype=np.int64)
D8Y = np.array([0, 0, -1, -1, -1, 0, 1, 1, 1], dtype=np.int64)

D8_CODES = (1, 2, 3, 4, 5, 6, 7, 8)
D4_CODES = (1, 3, 5, 7)

# Direction pointing back at the source
D8_INVERSE = np.array([0, 5, 6, 7, 8, 1, 2, 3, 4], dtype=np.int64)

# Distance to each neighbour in cell units
D8_DISTANCE = np.array(
    [0.0, 1.0, np.sqrt(2.0), 1.0, np.sqrt(2.0), 1.0, np.sqrt(2.0), 1.0, np.sqrt(2.0)],
    dtype=np.float64,
)

# ESRI power-of-two encoding indexed by D8 code:
#  32  64 128
#  16   x   1
#   8   4   2
D8_TO_ESRI = np.array([0, 16, 32, 64, 128, 1, 2, 4, 8], dtype=np.uint8)
ESRI_TO_D8 = {int(esri): code for code, esri in enumerate(D8_TO_ESRI) if code > 0}


def _matches(values: np.ndarray, sentinel) -> np.ndarray:
    """Elementwise ``values == sentinel`` treating NaN sentinels as equal to NaN."""
    if sentinel is None:
        return np.zeros(values.shape, dtype=bool)
    try:
        is_nan = bool(np.isnan(sentinel))
    except TypeError:
        is_nan = False
    if is_nan:
        if np.issubdtype(values.dtype, np.floating):
            return np.isnan(values)
        return np.zeros(values.shape, dtype=bool)
    return values == sentinel


@dataclass
class RasterGrid:
    """
    Dense rectangular raster with a no-data sentinel.

    ``data`` is either 2-D ``(rows, cols)`` or 3-D ``(rows, cols, 8)`` for
    proportion grids, where channel ``k`` holds the fraction routed toward
    direction code ``k + 1``.
    """

    data: np.ndarray
    nodata: Optional[Union[int, float]] = None
    transform: Optional[Affine] = None
    crs: Optional[object] = field(default=None, repr=False)

    def __post_init__(self):
        self.data = np.asarray(self.data)
        if self.data.ndim not in (2, 3):
            raise PreconditionViolation(
                f"Grid data must be 2-D or 3-D, got shape {self.data.shape}"
            )

    @property
    def shape(self) -> Tuple[int, int]:
        return self.data.shape[0], self.data.shape[1]

    @property
    def height(self) -> int:
        return self.data.shape[0]

    @property
    def width(self) -> int:
        return self.data.shape[1]

    @property
    def size(self) -> int:
        """Number of cells (channels excluded)."""
        return self.height * self.width

    def xy_to_i(self, x: int, y: int) -> int:
        return y * self.width + x

    def i_to_xy(self, i: int) -> Tuple[int, int]:
        return i % self.width, i // self.width

    def in_grid(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def is_edge_cell(self, x: int, y: int) -> bool:
        return x == 0 or y == 0 or x == self.width - 1 or y == self.height - 1

    def nshift(self, n: int) -> int:
        """Linear index offset of the neighbour in direction ``n``."""
        return int(D8X[n] + D8Y[n] * self.width)

    def edge_mask(self) -> np.ndarray:
        mask = np.zeros(self.shape, dtype=bool)
        mask[0, :] = mask[-1, :] = True
        mask[:, 0] = mask[:, -1] = True
        return mask

    def nodata_mask(self) -> np.ndarray:
        """
        Boolean mask of no-data cells.

        For 3-D grids a cell is no-data only when every channel holds the
        sentinel. Cells with a partial match are left for validation to reject.
        """
        matches = _matches(self.data, self.nodata)
        if self.data.ndim == 3:
            return matches.all(axis=2)
        return matches

    def valid_mask(self) -> np.ndarray:
        return ~self.nodata_mask()

    def filled(self, value=0) -> "RasterGrid":
        """Copy with every no-data cell set to ``value`` and the sentinel cleared."""
        data = self.data.copy()
        data[self.nodata_mask()] = value
        return RasterGrid(data, nodata=None, transform=self.transform, crs=self.crs)

    @classmethod
    def make_from_template(cls, template: "RasterGrid", fill=0, dtype=None, nodata=None):
        """New 2-D grid with the template's dimensions and georeferencing."""
        data = np.full(template.shape, fill, dtype=dtype or template.data.dtype)
        return cls(data, nodata=nodata, transform=template.transform, crs=template.crs)


def as_grid(grid, nodata=None) -> RasterGrid:
    """Wrap a bare array in a RasterGrid; pass grids through unchanged."""
    if isinstance(grid, RasterGrid):
        if nodata is not None and grid.nodata is None:
            return RasterGrid(grid.data, nodata=nodata, transform=grid.transform, crs=grid.crs)
        return grid
    return RasterGrid(np.asarray(grid), nodata=nodata)


def esri_to_d8(esri: np.ndarray, nodata=None) -> np.ndarray:
    """
    Convert ESRI power-of-two flow directions to D8 codes 1..8.

    Zero stays NO_FLOW and cells equal to ``nodata`` are passed through
    unchanged. Any other value raises PreconditionViolation.
    """
    esri = np.asarray(esri)
    keep = _matches(esri, nodata)
    out = np.zeros(esri.shape, dtype=np.int64)
    known = keep | (esri == 0)
    for value, code in ESRI_TO_D8.items():
        hit = (esri == value) & ~keep
        out[hit] = code
        known |= hit
    if not known.all():
        bad = np.unique(esri[~known])
        raise PreconditionViolation(f"Unknown ESRI flow direction codes: {bad[:10].tolist()}")
    if nodata is not None:
        out = out.astype(np.result_type(out.dtype, np.asarray(nodata).dtype))
        out[keep] = nodata
    return out


def d8_to_esri(directions: np.ndarray, nodata=None) -> np.ndarray:
    """Convert D8 codes 1..8 to ESRI power-of-two encoding (inverse of esri_to_d8)."""
    directions = np.asarray(directions)
    keep = _matches(directions, nodata)
    codes = np.where(keep, 0, directions)
    if np.any((codes < 0) | (codes > 8)):
        raise PreconditionViolation("D8 direction codes must lie in 0..8")
    out = D8_TO_ESRI[codes.astype(np.int64)].astype(np.int64)
    if nodata is not None:
        out[keep] = nodata
    return out
