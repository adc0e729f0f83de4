"""
SimFire Core
============
Drives the generation loop: initial generation, parallel evaluation,
classification, termination check, next generation.
"""

import copy
import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

import numpy as np

from .generation import GenerationController
from .run_params import GenerationStats, ResultCode, RunDescriptor, allocate_generation
from .scheduler import RunScheduler
from .settings import Settings
from .stepper import ExportSink, LogSink, TrajectoryStepper

logger = logging.getLogger(__name__)


class ThreadSafeLogSink:
    """Log sink shared by all worker threads; one lock serialises the writes."""

    def __init__(self, logger_name: str = "simfire.run", level: int = logging.DEBUG):
        self._logger = logging.getLogger(logger_name)
        self._level = level
        self._lock = threading.Lock()

    def write(self, run_or_thread_id: str, message: str) -> None:
        with self._lock:
            self._logger.log(self._level, "[%s]   %s", run_or_thread_id, message)


@dataclass
class SearchResult:
    """Outcome of a whole search."""
    descriptors: List[RunDescriptor]  # final generation
    history: List[GenerationStats] = field(default_factory=list)
    hits: List[RunDescriptor] = field(default_factory=list)

    @property
    def hit(self) -> bool:
        return len(self.hits) > 0

    @property
    def generations(self) -> int:
        return len(self.history)

    def best(self, count: int = 1) -> List[RunDescriptor]:
        """Finished, non-error descriptors of the final generation, closest first."""
        usable = [d for d in self.descriptors
                  if d.result.is_finished and d.result is not ResultCode.ERROR]
        return sorted(usable, key=lambda d: d.min_dist_sq)[:count]


class SimFireCore:
    """
    Generation loop of the aim search.

    Generations are strictly sequential: the next one is built only after
    the scheduler has joined all workers of the current one.
    """

    def __init__(
            self,
            settings: Settings,
            log_sink: Optional[LogSink] = None,
            export_factory: Optional[Callable[[], ExportSink]] = None,
            rng: Optional[np.random.Generator] = None
    ):
        self.settings = settings
        self.log_sink = log_sink if log_sink is not None else ThreadSafeLogSink()
        self.scheduler = RunScheduler(settings, self.log_sink, export_factory)
        self.controller = GenerationController(settings, rng)

    def run(self) -> SearchResult:
        settings = self.settings
        descriptors = allocate_generation(settings.runs_in_generation)

        if not descriptors:
            logger.warning("No runs to perform")
            return SearchResult(descriptors=descriptors)

        result = SearchResult(descriptors=descriptors)
        self.controller.initial_generation(descriptors)

        for generation in range(settings.max_generations):
            self.scheduler.run(descriptors)

            stats = GenerationStats.collect(generation, descriptors)
            result.history.append(stats)
            logger.info(stats.summary())

            if stats.hits > 0:
                logger.info("Target hit in generation %d", generation)
                break
            if generation + 1 >= settings.max_generations:
                logger.info("Maximum number of generations reached without a hit")
                break

            origins = self.controller.next_generation(descriptors, stats.avg_distance)
            logger.debug("Next generation origins: %s", origins)

        result.hits = [copy.copy(d) for d in descriptors if d.is_hit]
        return result


def replay_runs(
        settings: Settings,
        descriptors: Sequence[RunDescriptor],
        log_sink: Optional[LogSink] = None,
        export_sink: Optional[ExportSink] = None,
        thread_id: str = "Main"
) -> List[RunDescriptor]:
    """Run descriptors one after another on the calling thread."""
    stepper = TrajectoryStepper(settings, log_sink, export_sink)
    for desc in descriptors:
        desc.thread_id = thread_id
        stepper.run(desc)
    return list(descriptors)


def run_test_sweep(
        settings: Settings,
        log_sink: Optional[LogSink] = None,
        export_sink: Optional[ExportSink] = None
) -> List[RunDescriptor]:
    """
    Evaluate ``aim_z_steps`` shots with the elevation stepped from
    ``aim_z_start`` towards ``aim_z_end``.
    """
    steps = settings.aim_z_steps
    increment = (settings.aim_z_end - settings.aim_z_start) / steps

    descriptors = []
    for step in range(steps):
        desc = RunDescriptor()
        desc.reset(aim=(settings.aim_x, settings.aim_y, settings.aim_z_start + step * increment),
                   run_id=f"TEST{step:04d}")
        descriptors.append(desc)

    return replay_runs(settings, descriptors, log_sink, export_sink)
