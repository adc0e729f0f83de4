"""
Export sinks: CSV files per run and an in-memory trajectory recorder.
"""

import copy
import csv
import logging
import os
from dataclasses import dataclass
from typing import Dict, Iterable, List, Tuple

import numpy as np

from .run_params import RunDescriptor, flag_string
from .stepper import ExportSink

logger = logging.getLogger(__name__)


class CSVExporter(ExportSink):
    """
    Writes the per-tick bullet state of each run into its own CSV file.

    The file name comes from ``template`` with ``{run}`` replaced by the run
    identifier. With ``hits_only`` the rows of missed shots are dropped.
    """

    HEADER = ["X [m]", "Y [m]", "XY [m]", "Z [m]", "vX [m/s]", "vY [m/s]",
              "vXY [m/s]", "vZ [m/s]", "Distance [m]", "Time [s]", "Flags"]

    def __init__(self, template: str, hits_only: bool = True, delimiter: str = ";"):
        self.template = template
        self.hits_only = hits_only
        self.delimiter = delimiter
        self.written: List[str] = []
        self._rows: List[List[str]] = []

    def path_for(self, descriptor: RunDescriptor) -> str:
        return self.template.format(run=descriptor.run_id)

    def begin_run(self, descriptor: RunDescriptor) -> None:
        self._rows = []

    def export_state(self, x, y, z, vx, vy, vz, distance, elapsed,
                     raising, below, near_half_plane) -> None:
        self._rows.append([
            f"{x:.6f}", f"{y:.6f}", f"{np.hypot(x, y):.6f}", f"{z:.6f}",
            f"{vx:.6f}", f"{vy:.6f}", f"{np.hypot(vx, vy):.6f}", f"{vz:.6f}",
            f"{distance:.6f}", f"{elapsed:.6f}",
            flag_string(raising, below, near_half_plane),
        ])

    def end_run(self, descriptor: RunDescriptor) -> None:
        rows, self._rows = self._rows, []
        if self.hits_only and not descriptor.is_hit:
            return

        filepath = self.path_for(descriptor)
        directory = os.path.dirname(filepath)
        if directory:
            os.makedirs(directory, exist_ok=True)

        with open(filepath, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f, delimiter=self.delimiter)
            writer.writerow(self.HEADER)
            writer.writerows(rows)

        self.written.append(filepath)
        logger.info("Exported simulation into file '%s'", filepath)


@dataclass
class TrajectoryPoint:
    """A single recorded bullet state."""
    time: float
    x: float
    y: float
    z: float
    vx: float
    vy: float
    vz: float
    distance: float  # to the target centre
    flags: str

    @property
    def speed(self) -> float:
        return float(np.sqrt(self.vx ** 2 + self.vy ** 2 + self.vz ** 2))


class TrajectoryRecorder(ExportSink):
    """Keeps every recorded point in memory, grouped by run identifier."""

    def __init__(self):
        self.trajectories: Dict[str, List[TrajectoryPoint]] = {}
        self.results: Dict[str, RunDescriptor] = {}
        self._current: List[TrajectoryPoint] = []

    def begin_run(self, descriptor: RunDescriptor) -> None:
        self._current = []
        self.trajectories[descriptor.run_id] = self._current

    def export_state(self, x, y, z, vx, vy, vz, distance, elapsed,
                     raising, below, near_half_plane) -> None:
        self._current.append(TrajectoryPoint(
            elapsed, x, y, z, vx, vy, vz, distance,
            flag_string(raising, below, near_half_plane)))

    def end_run(self, descriptor: RunDescriptor) -> None:
        self.results[descriptor.run_id] = copy.copy(descriptor)

    def get_arrays(self, run_id: str) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        """Trajectory of one run as numpy arrays (t, x, y, z)."""
        points = self.trajectories[run_id]
        t = np.array([p.time for p in points])
        x = np.array([p.x for p in points])
        y = np.array([p.y for p in points])
        z = np.array([p.z for p in points])
        return t, x, y, z


class MultiExportSink(ExportSink):
    """Forwards every call to several sinks."""

    def __init__(self, sinks: Iterable[ExportSink]):
        self.sinks = list(sinks)

    def begin_run(self, descriptor: RunDescriptor) -> None:
        for sink in self.sinks:
            sink.begin_run(descriptor)

    def export_state(self, *state) -> None:
        for sink in self.sinks:
            sink.export_state(*state)

    def end_run(self, descriptor: RunDescriptor) -> None:
        for sink in self.sinks:
            sink.end_run(descriptor)
