"""Tests for configuration module."""
import logging

import numpy as np

from src import config
from src.utils.helpers import setup_logging


def test_project_root_exists():
    """Test that PROJECT_ROOT is set correctly."""
    assert config.PROJECT_ROOT.exists()
    assert config.PROJECT_ROOT.is_dir()
    assert (config.PROJECT_ROOT / "src" / "flowacc").is_dir()


def test_data_directories_are_under_project_root():
    """Data paths are derived from the project root and not created on import."""
    assert config.DATA_DIR.parent == config.PROJECT_ROOT
    assert config.DEM_DIR.parent == config.DATA_DIR
    assert config.OUTPUT_DIR.is_relative_to(config.PROJECT_ROOT)


def test_config_constants():
    """Test that configuration constants are properly set."""
    assert isinstance(config.DEFAULT_LOG_LEVEL, str)
    assert config.DEFAULT_CHUNK_SIZE > 0
    assert np.issubdtype(np.dtype(config.DEFAULT_COUNT_DTYPE), np.unsignedinteger)
    assert np.issubdtype(np.dtype(config.DEFAULT_FLOAT_DTYPE), np.floating)
    assert config.DEFAULT_EDGE_MODE in ("route", "drain")
    assert 0 < config.PROPORTION_TOLERANCE < 1e-3


def test_setup_logging_adds_single_handler():
    """Repeated setup does not stack console handlers."""
    logger = setup_logging("flowacc.test", level="DEBUG")
    setup_logging("flowacc.test", level="DEBUG")

    console = [h for h in logger.handlers if getattr(h, "_flowacc_console", False)]
    assert len(console) == 1
    assert logger.level == logging.DEBUG
