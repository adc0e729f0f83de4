import math
from typing import List

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from .core import SimFireCore, replay_runs
from .export import TrajectoryRecorder
from .run_params import RunDescriptor
from .settings import DEFAULT_MAX_TICKS, Settings, SettingsError

app = FastAPI(title="SimFire")


class SettingsModel(BaseModel):
    identifier: str = "SimFire"
    gun_x: float = 0.0
    gun_y: float = 0.0
    gun_z: float = 0.0
    velocity: float
    cd: float
    mass: float
    bullet_size: float
    tgt_x: float
    tgt_y: float = 0.0
    tgt_z: float = 0.0
    tgt_size: float
    g: float = 9.81
    density: float = 1.225
    dt: float = 0.01
    runs_in_generation: int = 25
    max_generations: int = 50
    threads: int = 0
    seed: int = -1
    max_ticks: int = DEFAULT_MAX_TICKS
    aim_jitter: float = 0.5
    cutoff_coef: float = 4.0
    spawner_count: int = 2
    fine_tune_coef: float = 0.05
    fine_tune_decay: float = 0.9
    recombine_inc: float = 2.0
    recombine_dec: float = 1.0
    mutate_coef: float = 0.1
    hallucinate_coef: float = 1.0

    def to_settings(self) -> Settings:
        try:
            return Settings(**self.model_dump()).require_valid()
        except SettingsError as e:
            raise HTTPException(status_code=422, detail=e.errors)


class SimRequest(BaseModel):
    settings: SettingsModel
    aim_x: float
    aim_y: float = 0.0
    aim_z: float
    include_points: bool = True


class SearchRequest(BaseModel):
    settings: SettingsModel
    best_count: int = Field(default=5, ge=0)


def _finite(value: float):
    """JSON has no infinity; unknown distances are sent as null."""
    return value if math.isfinite(value) else None


def _stats_payload(stats) -> dict:
    return {k: (_finite(v) if isinstance(v, float) else v) for k, v in vars(stats).items()}


def _descriptor_payload(desc: RunDescriptor) -> dict:
    return {
        "run_id": desc.run_id,
        "thread_id": desc.thread_id,
        "aim": [desc.aim_x, desc.aim_y, desc.aim_z],
        "result": desc.result.value,
        "hit": desc.is_hit,
        "min_distance": _finite(desc.min_distance),
        "min_time": desc.min_time,
        "elapsed_time": desc.elapsed_time,
        "raising": desc.raising,
        "below": desc.below,
        "near_half_plane": desc.near_half_plane,
        "flags": desc.flags,
    }


@app.post("/api/simulate")
def simulate(data: SimRequest):
    settings = data.settings.to_settings()

    desc = RunDescriptor()
    desc.reset(aim=(data.aim_x, data.aim_y, data.aim_z), run_id="API")
    recorder = TrajectoryRecorder() if data.include_points else None
    replay_runs(settings, [desc], export_sink=recorder)

    points: List[dict] = []
    if recorder is not None:
        points = [{"t": p.time, "x": p.x, "y": p.y, "z": p.z, "flags": p.flags}
                  for p in recorder.trajectories.get(desc.run_id, [])]

    return {
        "success": True,
        "run": _descriptor_payload(desc),
        "points": points,
    }


@app.post("/api/search")
def search(data: SearchRequest):
    settings = data.settings.to_settings()
    result = SimFireCore(settings).run()

    return {
        "success": True,
        "hit": result.hit,
        "generations": result.generations,
        "hits": [_descriptor_payload(d) for d in result.hits],
        "best": [_descriptor_payload(d) for d in result.best(data.best_count)],
        "history": [_stats_payload(s) for s in result.history],
    }
