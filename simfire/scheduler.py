"""
Parallel execution of one generation of runs.

The descriptors are split into contiguous slices, one per worker thread.
Every worker owns its own stepper and writes only to its own slice, so the
descriptors need no locking. ``run`` returns only after all workers joined.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Callable, List, Optional, Sequence

from .run_params import RunDescriptor
from .settings import Settings
from .stepper import ExportSink, LogSink, TrajectoryStepper

logger = logging.getLogger(__name__)


def partition(count: int, workers: int) -> List[range]:
    """
    Split ``range(count)`` into ``workers`` contiguous near-equal slices.

    The first ``count % workers`` slices get one extra element. Empty
    slices are kept so the result always has ``workers`` entries.
    """
    workers = max(1, workers)
    base, extra = divmod(count, workers)

    slices = []
    start = 0
    for index in range(workers):
        size = base + (1 if index < extra else 0)
        slices.append(range(start, start + size))
        start += size
    return slices


def thread_name(index: int) -> str:
    return f"T{index:02d}"


class RunScheduler:
    """Fork-join executor for a batch of run descriptors."""

    def __init__(
            self,
            settings: Settings,
            log_sink: Optional[LogSink] = None,
            export_factory: Optional[Callable[[], ExportSink]] = None,
            threads: Optional[int] = None
    ):
        self.settings = settings
        self.log_sink = log_sink
        self.export_factory = export_factory
        self.threads = threads if threads is not None else settings.thread_count

    def _run_bunch(self, descriptors: Sequence[RunDescriptor], indices: range, thread_id: str):
        export_sink = self.export_factory() if self.export_factory is not None else None
        stepper = TrajectoryStepper(self.settings, self.log_sink, export_sink)

        if self.log_sink is not None:
            self.log_sink.write(thread_id, f"Starting {len(indices)} runs "
                                           f"[{indices.start}, {indices.stop})")

        for index in indices:
            desc = descriptors[index]
            desc.thread_id = thread_id
            stepper.run(desc)

    def run(self, descriptors: Sequence[RunDescriptor]) -> List[range]:
        """
        Evaluate every descriptor and block until all of them finished.

        Returns:
            The slices that were dispatched, one per worker.
        """
        if len(descriptors) == 0:
            logger.info("No runs to perform")
            return []

        slices = [s for s in partition(len(descriptors), self.threads) if len(s) > 0]
        logger.debug("Dispatching %d runs over %d threads", len(descriptors), len(slices))

        with ThreadPoolExecutor(max_workers=len(slices), thread_name_prefix="simfire") as executor:
            futures = [
                executor.submit(self._run_bunch, descriptors, indices, thread_name(index))
                for index, indices in enumerate(slices)
            ]
            wait(futures)

        # Re-raise the first worker failure, if any
        for future in futures:
            future.result()

        return slices
