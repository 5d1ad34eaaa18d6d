"""
Error taxonomy for the flow accumulation engine.

Every error is also an instance of the builtin it specializes, so callers
written against ValueError/RuntimeError keep working.
"""


class AccumulationError(Exception):
    """Base class for all flow accumulation failures."""

    pass


class PreconditionViolation(AccumulationError, ValueError):
    """Raised when inputs are malformed. Checked before any register is mutated."""

    pass


class CycleDetected(AccumulationError, RuntimeError):
    """
    Raised when dependency counts remain after the ready queue empties.

    Attributes:
        residual: Number of valid cells that never reached a zero dependency count
        cells: Sample of stuck cells as (row, col) pairs
    """

    def __init__(self, residual: int, cells=()):
        self.residual = residual
        self.cells = list(cells)
        sample = ", ".join(f"({r}, {c})" for r, c in self.cells)
        super().__init__(
            f"Cycle detected in flow network! {residual:,} cells never reached "
            f"zero dependencies (e.g. {sample}). The flow field must be acyclic; "
            "check flats and depressions in the source DEM."
        )


class OverflowRisk(AccumulationError, OverflowError):
    """Raised when the accumulation dtype cannot hold the largest possible value."""

    pass


class RunCancelled(AccumulationError):
    """Raised when a run is cancelled through its context. Partial results are discarded."""

    pass
