"""
Side view of recorded trajectories: distance from the gun along the ground
against height, with the target drawn to scale.
"""

from typing import Iterable, Optional

import numpy as np
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
from matplotlib.lines import Line2D
from matplotlib.patches import Circle

from .export import TrajectoryRecorder
from .settings import Settings


# Colour palette
TRAJECTORY_HIT = '#22c55e'
TRAJECTORY_MISS = '#6366f1'
TARGET = '#ef4444'
LAUNCH = '#f59e0b'
GROUND = '#64748b'


def plot_trajectories(
        recorder: TrajectoryRecorder,
        settings: Settings,
        run_ids: Optional[Iterable[str]] = None,
        title: Optional[str] = None
):
    """
    Create a figure with one line per recorded run.

    Parameters
    ----------
    recorder : TrajectoryRecorder
        Source of the points and of the final run results.
    settings : Settings
        Gun and target geometry.
    run_ids : iterable of str, optional
        Runs to draw; all recorded runs by default.

    Returns
    -------
    fig : matplotlib.figure.Figure
        The caller decides whether to ``savefig`` or show it.
    """
    fig, ax = plt.subplots(figsize=(10, 6))

    gun = settings.gun_position
    target_range = float(np.hypot(settings.tgt_x - gun[0], settings.tgt_y - gun[1]))

    ids = list(run_ids) if run_ids is not None else list(recorder.trajectories)
    hits = 0
    for run_id in ids:
        _, x, y, z = recorder.get_arrays(run_id)
        ground_range = np.hypot(x - gun[0], y - gun[1])
        result = recorder.results.get(run_id)
        is_hit = result is not None and result.is_hit
        hits += int(is_hit)
        ax.plot(ground_range, z,
                color=TRAJECTORY_HIT if is_hit else TRAJECTORY_MISS,
                linewidth=2 if is_hit else 1,
                alpha=1.0 if is_hit else 0.5)

    # Target, gun and ground
    ax.add_patch(Circle((target_range, settings.tgt_z), settings.tgt_size,
                        facecolor=TARGET, edgecolor=TARGET, alpha=0.6))
    ax.plot(0.0, settings.gun_z, 'o', color=LAUNCH, markersize=10,
            markeredgecolor='white', markeredgewidth=2, zorder=5)
    ax.axhline(0.0, color=GROUND, linewidth=1)

    ax.set_xlabel('Horizontal Distance (m)')
    ax.set_ylabel('Height (m)')
    ax.set_title(title or f'{settings.identifier}: {len(ids)} trajectories, {hits} hit(s)')
    ax.grid(True, linestyle=':', linewidth=0.5, alpha=0.5)
    ax.set_aspect('equal', adjustable='datalim')

    legend_elements = [
        Line2D([0], [0], color=TRAJECTORY_HIT, linewidth=2, label='Hit'),
        Line2D([0], [0], color=TRAJECTORY_MISS, linewidth=1, label='Miss'),
        Line2D([0], [0], marker='o', color='w', markerfacecolor=LAUNCH, markersize=10, label='Gun'),
        Line2D([0], [0], marker='o', color='w', markerfacecolor=TARGET, markersize=10, label='Target'),
    ]
    ax.legend(handles=legend_elements, loc='upper right', fontsize=9)

    plt.tight_layout()
    return fig


def save_trajectory_plot(recorder: TrajectoryRecorder, settings: Settings, path: str, **kwargs) -> str:
    fig = plot_trajectories(recorder, settings, **kwargs)
    fig.savefig(path, dpi=120)
    plt.close(fig)
    return path
