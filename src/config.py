"""Configuration module for flowacc project.

Centralizes data paths and default engine settings.
"""
import os
from pathlib import Path

# Project root
PROJECT_ROOT = Path(__file__).parent.parent

# Data directories (created by the example scripts as needed)
DATA_DIR = PROJECT_ROOT / "data"
DEM_DIR = DATA_DIR / "dem"
OUTPUT_DIR = PROJECT_ROOT / "examples" / "output"

# Logging
DEFAULT_LOG_LEVEL = os.environ.get("FLOWACC_LOG_LEVEL", "INFO")

# Scheduler: dequeues per kernel call between progress/cancellation checks
DEFAULT_CHUNK_SIZE = 1 << 16

# Accumulation registers
DEFAULT_COUNT_DTYPE = "uint32"
DEFAULT_FLOAT_DTYPE = "float64"

# Flow-field providers
DEFAULT_DIRECTION_NODATA = 255
PROPORTION_TOLERANCE = 1e-5

# Border handling: "route" or "drain"
DEFAULT_EDGE_MODE = "route"
