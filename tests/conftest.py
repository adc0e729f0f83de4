"""Pytest configuration and fixtures for SimFire tests."""

import threading

import numpy as np
import pytest

from simfire.settings import Settings


class RecordingLogSink:
    """Collects log messages; safe to share between worker threads."""

    def __init__(self):
        self.messages = []
        self._lock = threading.Lock()

    def write(self, run_or_thread_id, message):
        with self._lock:
            self.messages.append((run_or_thread_id, message))


@pytest.fixture
def seeded_rng():
    """Provide a deterministic generator for tests."""
    return np.random.default_rng(42)


@pytest.fixture
def log_sink():
    return RecordingLogSink()


@pytest.fixture
def vacuum_settings():
    """Gun at the origin, 0.5 m target 100 m downrange, no air."""
    return Settings(
        identifier="Vacuum",
        velocity=50.0,
        cd=0.47,
        mass=0.1,
        bullet_size=0.05,
        tgt_x=100.0,
        tgt_size=0.5,
        g=9.81,
        density=0.0,
        dt=0.01,
        runs_in_generation=8,
        max_generations=3,
        threads=2,
        seed=7,
    )


@pytest.fixture
def easy_settings():
    """Large, close target that every initial aim hits."""
    return Settings(
        identifier="Easy",
        velocity=50.0,
        cd=0.47,
        mass=0.1,
        bullet_size=0.05,
        tgt_x=40.0,
        tgt_z=2.0,
        tgt_size=3.0,
        density=0.0,
        dt=0.01,
        runs_in_generation=6,
        max_generations=5,
        threads=3,
        seed=1,
        aim_jitter=0.0,
    )
