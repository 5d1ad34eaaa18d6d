"""
Flow accumulation over DEM-derived raster grids.

Core functionality:
- RasterGrid with row-major indexing and D8/D4 neighbour tables
- Dependency-count builder and topological (Kahn) accumulation scheduler
- Single-direction and proportional accumulation entry points
- Pluggable flow-field providers (D8, D4, Freeman, Holmgren, Quinn, Tarboton)
- GeoTIFF I/O through rasterio
"""

from .accumulation import (
    accumulate_from_dem,
    accumulate_proportional,
    accumulate_single_direction,
)
from .context import AccumulationContext, tqdm_progress
from .errors import (
    AccumulationError,
    CycleDetected,
    OverflowRisk,
    PreconditionViolation,
    RunCancelled,
)
from .flowmet import FLOW_METHODS, FlowMethod, get_flow_method
from .grid import NO_FLOW, RasterGrid, d8_to_esri, esri_to_d8
from .raster_io import read_grid, read_proportions, write_grid

__all__ = [
    "accumulate_from_dem",
    "accumulate_proportional",
    "accumulate_single_direction",
    "AccumulationContext",
    "tqdm_progress",
    "AccumulationError",
    "CycleDetected",
    "OverflowRisk",
    "PreconditionViolation",
    "RunCancelled",
    "FLOW_METHODS",
    "FlowMethod",
    "get_flow_method",
    "NO_FLOW",
    "RasterGrid",
    "d8_to_esri",
    "esri_to_d8",
    "read_grid",
    "read_proportions",
    "write_grid",
]
