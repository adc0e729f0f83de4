"""
SimFire Generation Controller
=============================
A simplified genetic search over launch elevations.

After a generation has been evaluated, every usable miss is sorted into one
of four buckets by its closest-approach geometry. The next generation is
then filled, in order, by:

1. Spawn       - copies and fine-tuned variants of the best entries of each bucket
2. Recombine   - blends of the best entries of two opposing buckets
3. Mutate      - random elevation scaling of the entries recombine left over
4. Hallucinate - fresh random elevations until the generation is full
"""

import bisect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from .run_params import ResultCode, RunDescriptor
from .settings import Settings

logger = logging.getLogger(__name__)

Aim = Tuple[float, float, float]


class MissClass(Enum):
    """Closest-approach geometry of a missed shot."""
    OVER_WHILE_RAISING = "over_while_raising"
    UNDER_WHILE_RAISING = "under_while_raising"
    NEAR_WHILE_FALLING = "near_while_falling"
    FAR_WHILE_FALLING = "far_while_falling"

    @classmethod
    def of(cls, descriptor: RunDescriptor) -> 'MissClass':
        if descriptor.raising:
            return cls.UNDER_WHILE_RAISING if descriptor.below else cls.OVER_WHILE_RAISING
        return cls.NEAR_WHILE_FALLING if descriptor.near_half_plane else cls.FAR_WHILE_FALLING

    @property
    def nudge(self) -> int:
        """Direction (+1 up, -1 down) that moves elevation towards the target."""
        if self in (MissClass.UNDER_WHILE_RAISING, MissClass.NEAR_WHILE_FALLING):
            return 1
        return -1


# Pairs whose members bracket the right elevation from opposite sides
OPPOSING_PAIRS = (
    (MissClass.OVER_WHILE_RAISING, MissClass.UNDER_WHILE_RAISING),
    (MissClass.NEAR_WHILE_FALLING, MissClass.FAR_WHILE_FALLING),
)


@dataclass
class BucketEntry:
    dist_sq: float  # squared miss distance, m²
    aim: Aim


class MissBucket:
    """
    Entries ordered by ascending squared miss distance, best first.

    Entries sharing the same distance are all kept, in insertion order.
    """

    def __init__(self, miss_class: MissClass):
        self.miss_class = miss_class
        self._entries: List[BucketEntry] = []

    def add(self, dist_sq: float, aim: Aim):
        bisect.insort_right(self._entries, BucketEntry(dist_sq, aim), key=lambda e: e.dist_sq)

    def best(self, count: int) -> List[BucketEntry]:
        return self._entries[:max(0, count)]

    def pop_best(self) -> BucketEntry:
        return self._entries.pop(0)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[BucketEntry]:
        return iter(self._entries)


class _GenerationWriter:
    """Overwrites descriptors in place; silently refuses once the array is full."""

    def __init__(self, descriptors: Sequence[RunDescriptor], generation: int):
        self._descriptors = descriptors
        self._generation = generation
        self._next = 0
        self.origins: Dict[str, int] = {}

    @property
    def full(self) -> bool:
        return self._next >= len(self._descriptors)

    @property
    def written(self) -> int:
        return self._next

    def emit(self, aim: Aim, origin: str) -> bool:
        if self.full:
            return False
        self._descriptors[self._next].reset(
            aim=aim, run_id=run_identifier(self._generation, self._next))
        self._next += 1
        self.origins[origin] = self.origins.get(origin, 0) + 1
        return True


def run_identifier(generation: int, index: int) -> str:
    return f"G{generation:03d}R{index:04d}"


def average_miss_distance(descriptors: Sequence[RunDescriptor]) -> float:
    """Mean closest-approach distance of all finished, non-error runs."""
    distances = [d.min_distance for d in descriptors
                 if d.result.is_finished and d.result is not ResultCode.ERROR]
    return float(np.mean(distances)) if distances else float("inf")


class GenerationController:
    """
    Builds the initial generation and every following one.

    The random generator is owned here and is only used between batches,
    never while the scheduler's workers are running.
    """

    def __init__(self, settings: Settings, rng: Optional[np.random.Generator] = None):
        self.settings = settings
        self.rng = rng if rng is not None else np.random.default_rng(settings.rng_seed)

        self.line_of_sight = settings.line_of_sight
        self.aim_scale = float(np.linalg.norm(self.line_of_sight))

        self.generation = 0
        self.fine_tune_coef = settings.fine_tune_coef
        self.last_origins: Dict[str, int] = {}

    # ------------------------------------------------------------------
    # Generation zero
    # ------------------------------------------------------------------

    def initial_generation(self, descriptors: Sequence[RunDescriptor]):
        """
        Aim along the line of sight with the elevation doubled and jittered.

        Doubling the vertical component is a rough allowance for the arc of
        the trajectory, not a physical result.
        """
        self.generation = 0
        self.fine_tune_coef = self.settings.fine_tune_coef

        lx, ly, lz = (float(v) for v in self.line_of_sight)
        half = self.settings.aim_jitter / 2.0

        for index, desc in enumerate(descriptors):
            z = 2.0 * lz + self.aim_scale * self.rng.uniform(-half, half)
            desc.reset(aim=(lx, ly, z), run_id=run_identifier(0, index))

        self.last_origins = {"initial": len(descriptors)}

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def classify(
            self,
            descriptors: Sequence[RunDescriptor],
            avg_distance: float
    ) -> Dict[MissClass, MissBucket]:
        """Sort usable misses into buckets; hits, errors and outliers are skipped."""
        buckets = {cls: MissBucket(cls) for cls in MissClass}
        cutoff_sq = self.settings.cutoff_coef * avg_distance ** 2

        for desc in descriptors:
            if not desc.result.is_finished or desc.result is ResultCode.ERROR or desc.is_hit:
                continue
            if desc.min_dist_sq > cutoff_sq:
                continue
            buckets[MissClass.of(desc)].add(desc.min_dist_sq, (desc.aim_x, desc.aim_y, desc.aim_z))

        return buckets

    # ------------------------------------------------------------------
    # Operators
    # ------------------------------------------------------------------

    @staticmethod
    def _nudge(z: float, amount: float, direction: int) -> float:
        return z + direction * abs(z) * amount

    def _spawn(self, writer: _GenerationWriter, bucket: MissBucket):
        direction = bucket.miss_class.nudge
        for entry in bucket.best(self.settings.spawner_count):
            x, y, z = entry.aim
            children = (
                z,
                self._nudge(z, self.fine_tune_coef, direction),
                self._nudge(z, 2.0 * self.fine_tune_coef, direction),
            )
            for child_z in children:
                if not writer.emit((x, y, child_z), "spawn"):
                    return

    def _recombine(self, writer: _GenerationWriter, bucket_a: MissBucket, bucket_b: MissBucket):
        inc = self.settings.recombine_inc
        dec = self.settings.recombine_dec
        total = inc + dec

        for _ in range(min(len(bucket_a), len(bucket_b))):
            ax, ay, az = bucket_a.pop_best().aim
            bx, by, bz = bucket_b.pop_best().aim
            x = (ax + bx) / 2.0
            y = (ay + by) / 2.0
            for z in ((inc * az + dec * bz) / total,
                      (dec * az + inc * bz) / total,
                      (az + bz) / 2.0):
                writer.emit((x, y, z), "recombine")

    def _mutate(self, writer: _GenerationWriter, bucket: MissBucket):
        coef = self.settings.mutate_coef
        for entry in bucket:
            if writer.full:
                return
            x, y, z = entry.aim
            writer.emit((x, y, z * self.rng.uniform(1.0, 1.0 + coef)), "mutate")

    def _hallucinate(self, writer: _GenerationWriter):
        lx, ly, lz = (float(v) for v in self.line_of_sight)
        half = self.settings.hallucinate_coef / 2.0
        while not writer.full:
            z = lz + self.aim_scale * self.rng.uniform(-half, half)
            writer.emit((lx, ly, z), "hallucinate")

    # ------------------------------------------------------------------
    # Next generation
    # ------------------------------------------------------------------

    def next_generation(
            self,
            descriptors: Sequence[RunDescriptor],
            avg_distance: Optional[float] = None
    ) -> Dict[str, int]:
        """
        Replace an evaluated generation, in place, by the next one.

        Args:
            descriptors: The evaluated generation; overwritten entry by entry.
            avg_distance: Average miss distance of that generation. Computed
                from the descriptors when not given.

        Returns:
            Number of descriptors produced by each operator.
        """
        if avg_distance is None:
            avg_distance = average_miss_distance(descriptors)

        # Buckets copy the aims they need, so overwriting below is safe
        buckets = self.classify(descriptors, avg_distance)
        bucket_sizes = {c.value: len(b) for c, b in buckets.items()}

        self.generation += 1
        writer = _GenerationWriter(descriptors, self.generation)

        for miss_class in MissClass:
            self._spawn(writer, buckets[miss_class])

        for class_a, class_b in OPPOSING_PAIRS:
            self._recombine(writer, buckets[class_a], buckets[class_b])

        for miss_class in MissClass:
            self._mutate(writer, buckets[miss_class])

        self._hallucinate(writer)

        self.fine_tune_coef *= self.settings.fine_tune_decay
        self.last_origins = writer.origins

        logger.debug(
            "Generation %d built: %s (buckets %s, fine tune %.4g)",
            self.generation, writer.origins, bucket_sizes, self.fine_tune_coef
        )
        return writer.origins
