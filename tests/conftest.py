"""Pytest configuration and fixtures for flowacc tests."""
import sys
from pathlib import Path

# Add project root to Python path for imports
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

import pytest
import numpy as np


@pytest.fixture
def sample_dem():
    """Create a small synthetic DEM for testing."""
    # Tilted bowl draining toward a low point left of center
    x = np.linspace(-10, 10, 60)
    y = np.linspace(-10, 10, 40)
    X, Y = np.meshgrid(x, y)
    Z = 1000 + 2 * (X**2 + Y**2) + 5 * X
    return Z.astype(np.float64)


@pytest.fixture
def noisy_dem():
    """Random-walk terrain with a fixed seed."""
    rng = np.random.default_rng(42)
    x = np.linspace(0, 4 * np.pi, 80)
    y = np.linspace(0, 4 * np.pi, 60)
    X, Y = np.meshgrid(x, y)
    dem = (np.sin(X) + np.cos(Y) + 2) * 100 + rng.normal(0, 5, size=X.shape)
    return dem


@pytest.fixture
def star_directions():
    """3x3 grid where all 8 border cells route into the terminal center."""
    return np.array(
        [
            [6, 7, 8],
            [5, 0, 1],
            [4, 3, 2],
        ],
        dtype=np.uint8,
    )


@pytest.fixture
def project_root():
    """Get the project root directory."""
    return Path(__file__).parent.parent
