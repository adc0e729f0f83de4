"""
SimFire Settings
================
Physical and search parameters entered by the user from outside. They are
read once from an INI file and stay constant for the whole program run.
"""

import configparser
import math
import os
import re
from dataclasses import dataclass, fields
from typing import List, Optional, Tuple

import numpy as np


_IDENTIFIER_RE = re.compile(r"^[A-Za-z0-9_\-]+$")

DEFAULT_MAX_TICKS = 1_000_000_000


class SettingsError(ValueError):
    """Raised when settings cannot be used; carries every problem found."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


@dataclass(frozen=True)
class Settings:
    """Read-only container of everything a simulation needs."""
    identifier: str = "SimFire"

    # Gun and bullet
    gun_x: float = 0.0  # m
    gun_y: float = 0.0  # m
    gun_z: float = 0.0  # m
    velocity: float = 0.0  # muzzle speed, m/s
    cd: float = 0.0  # drag coefficient (ideal sphere)
    mass: float = 0.0  # kg
    bullet_size: float = 0.0  # radius, m

    # Target
    tgt_x: float = 0.0  # m
    tgt_y: float = 0.0  # m
    tgt_z: float = 0.0  # m
    tgt_size: float = 0.0  # radius, m

    # Environment
    g: float = 9.81  # m/s²
    density: float = 1.225  # kg/m³, <= 0 means vacuum

    # Simulation
    dt: float = 0.01  # s
    runs_in_generation: int = 25
    max_generations: int = 50
    threads: int = 0  # 0 = one per CPU
    seed: int = -1  # negative = entropy
    max_ticks: int = DEFAULT_MAX_TICKS
    log_interval: float = 0.0  # s of simulation time, <= 0 disables

    # Search heuristics
    aim_jitter: float = 0.5
    cutoff_coef: float = 4.0
    spawner_count: int = 2
    fine_tune_coef: float = 0.05
    fine_tune_decay: float = 0.9
    recombine_inc: float = 2.0
    recombine_dec: float = 1.0
    mutate_coef: float = 0.1
    hallucinate_coef: float = 1.0

    # Z-sweep test run
    do_test_run: bool = False
    aim_x: float = 0.0
    aim_y: float = 0.0
    aim_z_start: float = 0.0
    aim_z_end: float = 0.0
    aim_z_steps: int = 1
    csv_export_template: str = ""
    csv_hits_only: bool = True

    @property
    def gun_position(self) -> np.ndarray:
        return np.array([self.gun_x, self.gun_y, self.gun_z], dtype=np.float64)

    @property
    def target_position(self) -> np.ndarray:
        return np.array([self.tgt_x, self.tgt_y, self.tgt_z], dtype=np.float64)

    @property
    def line_of_sight(self) -> np.ndarray:
        """Vector from the gun to the target."""
        return self.target_position - self.gun_position

    @property
    def is_vacuum(self) -> bool:
        return self.density <= 0.0

    @property
    def thread_count(self) -> int:
        """Configured worker count, or one per CPU when not set."""
        if self.threads > 0:
            return self.threads
        return max(1, os.cpu_count() or 1)

    @property
    def rng_seed(self) -> Optional[int]:
        return self.seed if self.seed >= 0 else None

    def validate(self) -> List[str]:
        """Return human readable problems, empty when the settings are usable."""
        errors = []

        if not self.identifier:
            errors.append("Identifier value not found")
        elif not _IDENTIFIER_RE.match(self.identifier):
            errors.append("Identifier contains unsupported characters")

        positive = [
            (self.velocity, "Velocity must be positive"),
            (self.cd, "Bullet drag coefficient must be positive"),
            (self.mass, "Bullet mass must be positive"),
            (self.bullet_size, "Bullet radius must be positive"),
            (self.tgt_size, "Target radius must be positive"),
            (self.g, "Gravitational acceleration must be positive"),
            (self.dt, "Time step must be positive"),
            (self.runs_in_generation, "Generation size must be positive"),
            (self.max_generations, "Maximum number of generations must be positive"),
            (self.max_ticks, "Maximum number of ticks must be positive"),
            (self.fine_tune_decay, "Fine tune decay factor must be positive"),
        ]
        for value, message in positive:
            if not (isinstance(value, (int, float)) and math.isfinite(value) and value > 0):
                errors.append(message)

        if self.threads < 0:
            errors.append("Number of threads must not be negative")
        if self.recombine_inc + self.recombine_dec <= 0:
            errors.append("Recombination weights must have a positive sum")
        if self.spawner_count < 0:
            errors.append("Spawner count must not be negative")
        if self.do_test_run and self.aim_z_steps <= 0:
            errors.append("Number of test run steps must be positive")

        non_negative = [
            (self.aim_jitter, "Initial aim jitter must not be negative"),
            (self.cutoff_coef, "Classification cutoff must not be negative"),
            (self.mutate_coef, "Mutation coefficient must not be negative"),
            (self.hallucinate_coef, "Hallucination coefficient must not be negative"),
        ]
        for value, message in non_negative:
            if value < 0:
                errors.append(message)

        if float(np.linalg.norm(self.line_of_sight)) < 1e-12:
            errors.append("Gun and target positions must differ")

        if self.csv_export_template:
            try:
                self.csv_export_template.format(run="TEST0000")
            except (KeyError, IndexError, ValueError, AttributeError):
                errors.append("CSV export template must only use the {run} placeholder")

        return errors

    def require_valid(self) -> 'Settings':
        errors = self.validate()
        if errors:
            raise SettingsError(errors)
        return self

    def preprint(self, width: int = 20) -> str:
        """Settings as aligned lines for the console banner."""
        units = {
            "gun_x": "m", "gun_y": "m", "gun_z": "m", "velocity": "m/s",
            "mass": "kg", "bullet_size": "m", "tgt_x": "m", "tgt_y": "m",
            "tgt_z": "m", "tgt_size": "m", "g": "m/s^2", "density": "kg/m^3",
            "dt": "s", "log_interval": "s",
        }
        lines = []
        for f in fields(self):
            value = getattr(self, f.name)
            unit = units.get(f.name)
            lines.append(f"{f.name:<{width}}{value}" + (f" {unit}" if unit else ""))
        return "\n".join(lines)


# (section, key, attribute, type)
_INI_LAYOUT = [
    ("general", "identifier", "identifier", str),
    ("gun", "x", "gun_x", float),
    ("gun", "y", "gun_y", float),
    ("gun", "z", "gun_z", float),
    ("gun", "velocity", "velocity", float),
    ("gun", "cd", "cd", float),
    ("gun", "mass", "mass", float),
    ("gun", "size", "bullet_size", float),
    ("target", "x", "tgt_x", float),
    ("target", "y", "tgt_y", float),
    ("target", "z", "tgt_z", float),
    ("target", "size", "tgt_size", float),
    ("environment", "g", "g", float),
    ("environment", "density", "density", float),
    ("simulation", "dt", "dt", float),
    ("simulation", "generation", "runs_in_generation", int),
    ("simulation", "maxgens", "max_generations", int),
    ("simulation", "threads", "threads", int),
    ("simulation", "seed", "seed", int),
    ("simulation", "maxticks", "max_ticks", int),
    ("search", "aimjitter", "aim_jitter", float),
    ("search", "cutoff", "cutoff_coef", float),
    ("search", "spawners", "spawner_count", int),
    ("search", "finetune", "fine_tune_coef", float),
    ("search", "finetunedecay", "fine_tune_decay", float),
    ("search", "recombineinc", "recombine_inc", float),
    ("search", "recombinedec", "recombine_dec", float),
    ("search", "mutate", "mutate_coef", float),
    ("search", "hallucinate", "hallucinate_coef", float),
    ("logging", "interval", "log_interval", float),
    ("test", "doTestRun", "do_test_run", bool),
    ("test", "aimX", "aim_x", float),
    ("test", "aimY", "aim_y", float),
    ("test", "aimZStart", "aim_z_start", float),
    ("test", "aimZEnd", "aim_z_end", float),
    ("test", "aimZSteps", "aim_z_steps", int),
    ("test", "csvExportTemplate", "csv_export_template", str),
    ("test", "csvHitsOnly", "csv_hits_only", bool),
]


def _read_value(parser: configparser.ConfigParser, section: str, key: str, kind):
    if kind is bool:
        return parser.getboolean(section, key)
    if kind is int:
        # Accept "1e9" style for large integers
        return int(float(parser.get(section, key)))
    if kind is float:
        return parser.getfloat(section, key)
    return parser.get(section, key).strip()


def import_settings(parser: configparser.ConfigParser) -> Tuple[Settings, List[str]]:
    """
    Build settings from a parsed INI file.

    Every missing or invalid value is collected as a message instead of
    raising, so the caller can show the whole list at once.

    Returns:
        Tuple of (settings, errors). The settings are only meaningful when
        the error list is empty.
    """
    errors: List[str] = []
    values = {}

    try:
        for section, key, attr, kind in _INI_LAYOUT:
            if not parser.has_option(section, key):
                continue
            try:
                values[attr] = _read_value(parser, section, key, kind)
            except ValueError:
                errors.append(f"Invalid value for [{section}] {key}: "
                              f"'{parser.get(section, key, raw=True)}'")

        settings = Settings(**values)
    except Exception as e:
        errors.append(f"Unexpected error during settings import: {e}")
        return Settings(), errors

    if "identifier" not in values:
        errors.append("Identifier value not found")
    errors.extend(settings.validate())

    return settings, errors


def parse_ini_text(text: str) -> configparser.ConfigParser:
    """Parse INI text; keys before the first section go to ``[general]``."""
    parser = configparser.ConfigParser(
        interpolation=None, inline_comment_prefixes=(";", "#"), strict=False
    )
    parser.read_string("[general]\n" + text)
    return parser


def load_settings(path: str) -> Tuple[Settings, List[str]]:
    """Read and import an INI setup file."""
    if not os.path.exists(path):
        return Settings(), [f"Setup file '{path}' does not exist."]

    try:
        with open(path, "r", encoding="utf-8") as f:
            parser = parse_ini_text(f.read())
    except (OSError, configparser.Error) as e:
        return Settings(), [f"Error reading setup file '{path}': {e}"]

    return import_settings(parser)
