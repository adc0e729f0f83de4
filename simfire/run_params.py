"""
Run descriptors: one trajectory evaluation request together with its result.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Tuple

import numpy as np


def flag_string(raising: bool, below: bool, near_half_plane: bool) -> str:
    """Miss geometry as three letters: R/F (raising/falling), B/A (below/above), N/F (near/far)."""
    return (("R" if raising else "F")
            + ("B" if below else "A")
            + ("N" if near_half_plane else "F"))


class ResultCode(Enum):
    """Terminal (or transient) state of one run."""
    NOT_STARTED = "not_started"
    RUNNING = "running"
    ENDED_NO_ACTIVE = "ended_no_active"
    ENDED_COLLISION = "ended_collision"
    ENDED_MAX_TICKS = "ended_max_ticks"
    ERROR = "error"

    @property
    def is_finished(self) -> bool:
        return self not in (ResultCode.NOT_STARTED, ResultCode.RUNNING)

    @property
    def label(self) -> str:
        return self.name.replace("_", " ").title().replace(" ", "")


@dataclass
class RunDescriptor:
    """
    Input and output of a single trajectory run.

    The aim coefficients give only the launch direction; their magnitude is
    irrelevant because the initial speed is always the muzzle speed.
    """
    run_id: str = ""
    thread_id: str = ""

    aim_x: float = 1.0
    aim_y: float = 0.0
    aim_z: float = 1.0

    result: ResultCode = ResultCode.NOT_STARTED
    min_dist_sq: float = math.inf  # m²
    min_time: float = 0.0  # s, time of the closest approach
    elapsed_time: float = 0.0  # s
    raising: bool = False
    below: bool = False
    near_half_plane: bool = False

    def reset(
            self,
            aim: Optional[Tuple[float, float, float]] = None,
            run_id: Optional[str] = None
    ):
        """Clear all outputs, optionally loading a new aim and identifier."""
        if aim is not None:
            self.aim_x, self.aim_y, self.aim_z = (float(a) for a in aim)
        if run_id is not None:
            self.run_id = run_id
        self.thread_id = ""
        self.clear_outputs()

    def clear_outputs(self):
        self.result = ResultCode.NOT_STARTED
        self.min_dist_sq = math.inf
        self.min_time = 0.0
        self.elapsed_time = 0.0
        self.raising = False
        self.below = False
        self.near_half_plane = False

    @property
    def aim(self) -> np.ndarray:
        return np.array([self.aim_x, self.aim_y, self.aim_z], dtype=np.float64)

    @property
    def min_distance(self) -> float:
        return math.sqrt(self.min_dist_sq)

    @property
    def is_hit(self) -> bool:
        return self.result is ResultCode.ENDED_COLLISION

    @property
    def flags(self) -> str:
        return flag_string(self.raising, self.below, self.near_half_plane)

    def describe(self) -> str:
        thread = f" [{self.thread_id}]" if self.thread_id else ""
        return (f"{self.run_id}{thread} aim=({self.aim_x:.6g}, {self.aim_y:.6g}, {self.aim_z:.6g}) "
                f"{self.result.label} dmin={self.min_distance:.4g} m tmin={self.min_time:.3f} s "
                f"t={self.elapsed_time:.3f} s {self.flags}")


def allocate_generation(size: int) -> List[RunDescriptor]:
    """Descriptors for one generation, allocated once and reused in place."""
    return [RunDescriptor() for _ in range(size)]


@dataclass
class GenerationStats:
    """Aggregate outcome of one evaluated generation."""
    generation: int
    runs: int = 0
    hits: int = 0
    errors: int = 0
    min_distance: float = math.inf
    avg_distance: float = math.inf
    max_distance: float = math.inf
    raising: int = 0
    falling: int = 0
    near: int = 0
    far: int = 0
    over: int = 0
    under: int = 0

    @classmethod
    def collect(cls, generation: int, descriptors: Iterable[RunDescriptor]) -> 'GenerationStats':
        """Summarise all non-error runs of a generation."""
        stats = cls(generation=generation)
        distances = []

        for desc in descriptors:
            stats.runs += 1
            if desc.result is ResultCode.ERROR:
                stats.errors += 1
                continue
            if desc.is_hit:
                stats.hits += 1
            distances.append(desc.min_distance)

            if desc.raising:
                stats.raising += 1
            else:
                stats.falling += 1
            if desc.near_half_plane:
                stats.near += 1
            else:
                stats.far += 1
            if desc.below:
                stats.under += 1
            else:
                stats.over += 1

        if distances:
            stats.min_distance = float(np.min(distances))
            stats.avg_distance = float(np.mean(distances))
            stats.max_distance = float(np.max(distances))

        return stats

    def summary(self) -> str:
        return (f"Generation {self.generation}: runs={self.runs} hits={self.hits} "
                f"errors={self.errors} dist min/avg/max="
                f"{self.min_distance:.4g}/{self.avg_distance:.4g}/{self.max_distance:.4g} m "
                f"rising={self.raising} falling={self.falling} near={self.near} "
                f"far={self.far} over={self.over} under={self.under}")
