"""
Run context for the accumulation engine: progress, cancellation and logging.

The context is passed explicitly into every engine call so that a run stays a
pure function of its inputs. The default context does nothing.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Iterator, Optional

from tqdm.auto import tqdm

from src import config
from .errors import RunCancelled

logger = logging.getLogger("src.flowacc")

ProgressCallback = Callable[[int, int], None]


@dataclass
class AccumulationContext:
    """Optional hooks for a single accumulation run."""

    progress: Optional[ProgressCallback] = None
    """Called as ``progress(processed, total)`` between scheduler chunks."""

    cancel_event: Optional[threading.Event] = None
    """When set, the run stops at the next chunk boundary with RunCancelled."""

    chunk_size: int = config.DEFAULT_CHUNK_SIZE
    """Maximum dequeues per kernel call."""

    logger: logging.Logger = field(default=logger, repr=False)

    def report(self, processed: int, total: int) -> None:
        if self.progress is not None:
            self.progress(processed, total)

    def check_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise RunCancelled("Flow accumulation cancelled; partial results discarded")


@contextmanager
def tqdm_progress(desc: str = "Accumulating flow", **kwargs) -> Iterator[ProgressCallback]:
    """
    Yield a progress callback that drives a tqdm bar.

    Example:
        with tqdm_progress() as progress:
            accumulate_single_direction(dirs, context=AccumulationContext(progress=progress))
    """
    bar = tqdm(total=0, desc=desc, unit="cells", **kwargs)

    def callback(processed: int, total: int) -> None:
        if bar.total != total:
            bar.total = total
            bar.refresh()
        bar.update(processed - bar.n)

    try:
        yield callback
    finally:
        bar.close()
