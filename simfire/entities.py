"""
Entity store used by a single trajectory run.

Each entity is an integer handle into a set of parallel numpy arrays. An
entity carries only the components that were attached to it, and views
select the handles that carry all requested components.
"""

from enum import Flag, auto
from typing import List

import numpy as np


class Component(Flag):
    """Components an entity may carry."""
    POSITION = auto()
    VELOCITY = auto()
    GEOMETRY = auto()
    PHYSICS = auto()
    STATUS = auto()


class EntityStore:
    """
    Struct-of-arrays arena for simulation entities.

    Attributes:
        position: (n, 3) array, X/Y/Z of the centre of mass [m]
        velocity: (n, 3) array, vX/vY/vZ [m/s]
        radius: sphere radius [m]
        cross_section: pi * radius², used by drag [m²]
        mass: [kg]
        cd: drag coefficient [-]
        numeric_id, active: activity status
        type_tag: text tag per entity ("bullet", "target")
    """

    _ARRAYS = (
        ("position", (3,), np.float64),
        ("velocity", (3,), np.float64),
        ("radius", (), np.float64),
        ("cross_section", (), np.float64),
        ("mass", (), np.float64),
        ("cd", (), np.float64),
        ("numeric_id", (), np.int64),
        ("active", (), np.bool_),
        ("_components", (), np.int64),
    )

    def __init__(self, capacity: int = 4):
        self._capacity = 0
        self._count = 0
        self.type_tag: List[str] = []
        self._allocate(max(1, capacity))

    def _allocate(self, capacity: int):
        for name, tail, dtype in self._ARRAYS:
            new = np.zeros((capacity,) + tail, dtype=dtype)
            old = getattr(self, name, None)
            if old is not None:
                new[:len(old)] = old
            setattr(self, name, new)
        self._capacity = capacity

    def __len__(self) -> int:
        return self._count

    def clear(self):
        """Destroy all entities; the arrays are kept for reuse."""
        self._count = 0
        self.type_tag = []
        self._components[:] = 0
        self.active[:] = False

    def create(self, type_tag: str = "") -> int:
        """Create an entity without components and return its handle."""
        if self._count == self._capacity:
            self._allocate(self._capacity * 2)
        handle = self._count
        self._count += 1
        self.type_tag.append(type_tag)
        self._components[handle] = 0
        return handle

    def _attach(self, handle: int, component: Component):
        if not 0 <= handle < self._count:
            raise IndexError(f"Unknown entity handle {handle}")
        self._components[handle] |= component.value

    def has(self, handle: int, components: Component) -> bool:
        return (int(self._components[handle]) & components.value) == components.value

    def set_position(self, handle: int, x: float, y: float, z: float):
        self._attach(handle, Component.POSITION)
        self.position[handle] = (x, y, z)

    def set_velocity(self, handle: int, vx: float, vy: float, vz: float):
        self._attach(handle, Component.VELOCITY)
        self.velocity[handle] = (vx, vy, vz)

    def set_geometry(self, handle: int, radius: float):
        self._attach(handle, Component.GEOMETRY)
        self.radius[handle] = radius
        self.cross_section[handle] = np.pi * radius ** 2

    def set_physics(self, handle: int, mass: float, cd: float):
        self._attach(handle, Component.PHYSICS)
        self.mass[handle] = mass
        self.cd[handle] = cd

    def set_status(self, handle: int, numeric_id: int, active: bool):
        self._attach(handle, Component.STATUS)
        self.numeric_id[handle] = numeric_id
        self.active[handle] = active

    def view(self, components: Component) -> np.ndarray:
        """Handles of all entities carrying every component in ``components``."""
        mask = (self._components[:self._count] & components.value) == components.value
        return np.flatnonzero(mask)
