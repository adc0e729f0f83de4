"""
SimFire Trajectory Stepper
==========================
Fixed timestep simulation of one shot: a bullet under gravity and quadratic
air drag flying towards a stationary spherical target.

Each tick applies, in this order:
- uniform rectilinear motion
- aerodynamic drag (skipped in vacuum)
- gravity
- ground plane deactivation
- activity check
- pairwise sphere collision check
- clock advance and closest-approach bookkeeping
"""

import logging
from typing import Optional, Protocol, Tuple

import numpy as np

from .entities import Component, EntityStore
from .run_params import ResultCode, RunDescriptor
from .settings import Settings

logger = logging.getLogger(__name__)


ZERO_TOLERANCE = 1e-12


def is_zero(value: float, tol: float = ZERO_TOLERANCE) -> bool:
    return -tol < value < tol


class LogSink(Protocol):
    """Receives journal messages; must tolerate calls from many threads."""

    def write(self, run_or_thread_id: str, message: str) -> None:
        ...


class ExportSink:
    """
    Receives the bullet state once per tick while attached to a stepper.

    Implementations only observe; they never change simulation state.
    """

    def begin_run(self, descriptor: RunDescriptor) -> None:
        pass

    def export_state(
            self,
            x: float, y: float, z: float,
            vx: float, vy: float, vz: float,
            distance: float, elapsed: float,
            raising: bool, below: bool, near_half_plane: bool
    ) -> None:
        raise NotImplementedError

    def end_run(self, descriptor: RunDescriptor) -> None:
        pass


class TrajectoryStepper:
    """
    Runs single trajectories for the given settings.

    One instance owns one entity store and must not be shared between
    threads; the store is cleared and rebuilt at the start of every run.
    """

    BULLET_TAG = "bullet"
    TARGET_TAG = "target"

    def __init__(
            self,
            settings: Settings,
            log_sink: Optional[LogSink] = None,
            export_sink: Optional[ExportSink] = None
    ):
        self.settings = settings
        self.log_sink = log_sink
        self.export_sink = export_sink
        self.store = EntityStore()

        self.dt = settings.dt
        self.max_ticks = settings.max_ticks

        # Half-space plane through the target, normal pointing at the gun
        self._target = settings.target_position
        self._plane_normal = settings.gun_position - self._target
        self._gun_side = self.half_plane_value(settings.gun_position)

        if settings.log_interval > 0:
            self._ticks_per_log = max(1, int(round(settings.log_interval / settings.dt)))
        else:
            self._ticks_per_log = 0

        self._bullet = -1
        self._target_entity = -1

    # ------------------------------------------------------------------
    # Miss geometry
    # ------------------------------------------------------------------

    def half_plane_value(self, point: np.ndarray) -> float:
        """Plane equation through the target evaluated at ``point``."""
        return float(np.dot(self._plane_normal, np.asarray(point, dtype=np.float64) - self._target))

    def is_near_half_plane(self, point: np.ndarray) -> bool:
        """True when ``point`` lies on the shooter's side of the target plane."""
        return self.half_plane_value(point) * self._gun_side > 0.0

    def miss_geometry(self, position: np.ndarray, velocity: np.ndarray) -> Tuple[bool, bool, bool]:
        """Return (raising, below, near_half_plane) for a bullet state."""
        raising = bool(velocity[2] >= 0.0)
        below = bool(position[2] < self._target[2])
        return raising, below, self.is_near_half_plane(position)

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def _log(self, run_id: str, message: str):
        if self.log_sink is not None:
            self.log_sink.write(run_id, message)

    def _create_entities(self, direction: np.ndarray):
        s = self.settings
        store = self.store
        store.clear()

        bullet = store.create(self.BULLET_TAG)
        store.set_position(bullet, s.gun_x, s.gun_y, s.gun_z)
        store.set_velocity(bullet, *(s.velocity * direction))
        store.set_geometry(bullet, s.bullet_size)
        store.set_physics(bullet, s.mass, s.cd)
        store.set_status(bullet, 1, True)

        # The target only provides geometry; its activity never keeps a run going
        target = store.create(self.TARGET_TAG)
        store.set_position(target, s.tgt_x, s.tgt_y, s.tgt_z)
        store.set_geometry(target, s.tgt_size)
        store.set_status(target, 2, False)

        self._bullet = bullet
        self._target_entity = target

    # ------------------------------------------------------------------
    # Processors
    # ------------------------------------------------------------------

    def _apply_motion(self, movers: np.ndarray):
        self.store.position[movers] += self.store.velocity[movers] * self.dt

    def _apply_drag(self, draggers: np.ndarray):
        """
        Quadratic drag as a speed loss along the current direction.
        dv = dt * 0.5 * rho * Cd * A * v² / m

        First-order explicit update; large dt * Cd combinations can overshoot.
        """
        if self.settings.is_vacuum or len(draggers) == 0:
            return

        store = self.store
        vel = store.velocity[draggers]
        speed = np.sqrt(np.sum(vel ** 2, axis=1))
        moving = speed > 1e-10
        if not np.any(moving):
            return

        loss = (self.dt * 0.5 * self.settings.density * store.cd[draggers]
                * store.cross_section[draggers] * speed ** 2 / store.mass[draggers])

        scale = np.ones_like(speed)
        scale[moving] = (speed[moving] - loss[moving]) / speed[moving]
        store.velocity[draggers] = vel * scale[:, None]

    def _apply_gravity(self, fallers: np.ndarray):
        self.store.velocity[fallers, 2] -= self.settings.g * self.dt

    def _apply_ground_plane(self, statused: np.ndarray):
        store = self.store
        grounded = statused[store.active[statused] & (store.position[statused, 2] <= 0.0)]
        store.active[grounded] = False

    def _any_active(self, statused: np.ndarray) -> bool:
        return bool(np.any(self.store.active[statused]))

    def _detect_collision(self, colliders: np.ndarray) -> bool:
        """All-pairs sphere overlap test; fine for a handful of entities."""
        if len(colliders) < 2:
            return False

        pos = self.store.position[colliders]
        rad = self.store.radius[colliders]
        i, j = np.triu_indices(len(colliders), k=1)
        dist_sq = np.sum((pos[i] - pos[j]) ** 2, axis=1)
        return bool(np.any(dist_sq < (rad[i] + rad[j]) ** 2))

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run(self, descriptor: RunDescriptor) -> ResultCode:
        """
        Simulate one shot and fill the outputs of ``descriptor``.

        Returns:
            The terminal result code, also stored in ``descriptor.result``.
        """
        run_id = descriptor.run_id
        aim = descriptor.aim
        norm = float(np.sqrt(np.sum(aim ** 2)))

        if is_zero(norm):
            descriptor.clear_outputs()
            descriptor.result = ResultCode.ERROR
            self._log(run_id, "Zero velocity direction coefficients given, cannot proceed.")
            logger.warning("Run %s not simulated: zero aim vector", run_id)
            return descriptor.result

        descriptor.clear_outputs()
        descriptor.result = ResultCode.RUNNING
        self._create_entities(aim / norm)

        store = self.store
        movers = store.view(Component.POSITION | Component.VELOCITY)
        draggers = store.view(Component.VELOCITY | Component.GEOMETRY | Component.PHYSICS)
        fallers = store.view(Component.VELOCITY)
        statused = store.view(Component.POSITION | Component.STATUS)
        colliders = store.view(Component.POSITION | Component.GEOMETRY)

        bullet = self._bullet
        target_pos = store.position[self._target_entity]

        if self.export_sink is not None:
            self.export_sink.begin_run(descriptor)

        tick = 0
        elapsed = 0.0
        result = ResultCode.RUNNING

        while result is ResultCode.RUNNING:
            self._apply_motion(movers)
            self._apply_drag(draggers)
            self._apply_gravity(fallers)
            self._apply_ground_plane(statused)
            any_active = self._any_active(statused)
            collided = self._detect_collision(colliders)

            tick += 1
            elapsed = tick * self.dt

            pos = store.position[bullet]
            vel = store.velocity[bullet]
            dist_sq = float(np.sum((pos - target_pos) ** 2))

            if dist_sq < descriptor.min_dist_sq:
                descriptor.min_dist_sq = dist_sq
                descriptor.min_time = elapsed
                (descriptor.raising,
                 descriptor.below,
                 descriptor.near_half_plane) = self.miss_geometry(pos, vel)

            if self.export_sink is not None:
                raising, below, near = self.miss_geometry(pos, vel)
                self.export_sink.export_state(
                    float(pos[0]), float(pos[1]), float(pos[2]),
                    float(vel[0]), float(vel[1]), float(vel[2]),
                    float(np.sqrt(dist_sq)), elapsed,
                    raising, below, near
                )

            if self._ticks_per_log and tick % self._ticks_per_log == 0:
                self._log(run_id, f"t={elapsed:.3f} s pos=({pos[0]:.3f}, {pos[1]:.3f}, {pos[2]:.3f}) "
                                  f"v=({vel[0]:.3f}, {vel[1]:.3f}, {vel[2]:.3f}) "
                                  f"d={np.sqrt(dist_sq):.3f} m")

            if collided:
                result = ResultCode.ENDED_COLLISION
            elif not any_active:
                result = ResultCode.ENDED_NO_ACTIVE
            elif tick >= self.max_ticks:
                result = ResultCode.ENDED_MAX_TICKS

        descriptor.elapsed_time = elapsed
        descriptor.result = result

        if self.export_sink is not None:
            self.export_sink.end_run(descriptor)

        self._log(run_id, f"Run ended: {descriptor.describe()}")
        return result
