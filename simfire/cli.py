#!/usr/bin/env python3
"""
SimFire command line
====================
Searches for the launch direction that hits a target, or sweeps a range of
elevations when the setup file asks for a test run.

Usage:
    simfire --setup shot.ini [--log-level DEBUG] [--plot trajectories.png]
"""

import argparse
import copy
import sys
from typing import List, Optional

from .core import SimFireCore, ThreadSafeLogSink, replay_runs, run_test_sweep
from .export import CSVExporter, MultiExportSink, TrajectoryRecorder
from .logging_config import configure_logging
from .run_params import ResultCode
from .settings import Settings, load_settings


ASTERISK_LINE = "*" * 40


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="simfire",
        description="Genetic search for a launch direction that hits a target under gravity and drag.",
    )
    parser.add_argument("--setup", required=True, metavar="FILE",
                        help="Path to INI file containing setup")
    parser.add_argument("--log-level", default=None,
                        help="Logging level (default: SIMFIRE_LOG_LEVEL or INFO)")
    parser.add_argument("--plot", default=None, metavar="PNG",
                        help="Save a side view of the final trajectories")
    parser.add_argument("--plot-count", type=int, default=5,
                        help="Number of best final-generation runs to plot after a search")
    return parser


def _banner(title: str):
    print(ASTERISK_LINE)
    print(title)
    print(ASTERISK_LINE)
    print()


def _run_sweep(settings: Settings, log_sink: ThreadSafeLogSink, plot: Optional[str]) -> int:
    _banner("Test run:")

    sinks = []
    if settings.csv_export_template:
        sinks.append(CSVExporter(settings.csv_export_template, settings.csv_hits_only))
    recorder = TrajectoryRecorder() if plot else None
    if recorder is not None:
        sinks.append(recorder)

    descriptors = run_test_sweep(settings, log_sink, MultiExportSink(sinks) if sinks else None)

    status = 0
    hits = []
    for desc in descriptors:
        print(f"Test {desc.describe()}")
        if desc.result is ResultCode.ERROR:
            status = 1
        elif desc.is_hit:
            hits.append(desc)

    print()
    _banner("Hits")
    for hit in hits:
        print(hit.describe())

    if recorder is not None:
        _save_plot(recorder, settings, plot)

    return status


def _save_plot(recorder: TrajectoryRecorder, settings: Settings, path: str):
    from .plotting import save_trajectory_plot
    save_trajectory_plot(recorder, settings, path)
    print(f"\nTrajectory plot saved to '{path}'")


def _run_search(settings: Settings, log_sink: ThreadSafeLogSink, plot: Optional[str], plot_count: int) -> int:
    export_factory = None
    if settings.csv_export_template:
        def export_factory():
            return CSVExporter(settings.csv_export_template, settings.csv_hits_only)

    core = SimFireCore(settings, log_sink, export_factory)
    result = core.run()

    _banner("Search result:")
    for stats in result.history:
        print(stats.summary())
    print()

    if result.hit:
        print(f"Target hit after {result.generations} generation(s):")
        for hit in result.hits:
            print(f"  {hit.describe()}")
    else:
        print(f"No hit after {result.generations} generation(s); closest runs:")
        for desc in result.best(plot_count):
            print(f"  {desc.describe()}")

    if plot:
        # Replay copies so the final generation stays untouched
        chosen = [copy.copy(d) for d in (result.hits or result.best(plot_count))]
        recorder = TrajectoryRecorder()
        replay_runs(settings, chosen, log_sink, recorder)
        _save_plot(recorder, settings, plot)

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    settings, errors = load_settings(args.setup)
    if errors:
        print("Errors found in configuration, quitting:", file=sys.stderr)
        for err in errors:
            print(f"  -> {err}", file=sys.stderr)
        return 1

    _banner("Simulation settings:")
    print(settings.preprint())
    print()

    log_sink = ThreadSafeLogSink()

    if settings.do_test_run:
        return _run_sweep(settings, log_sink, args.plot)
    return _run_search(settings, log_sink, args.plot, args.plot_count)


if __name__ == "__main__":
    sys.exit(main())
