"""
Tests for the HTTP endpoints.
"""

import inspect

import pytest
from fastapi.testclient import TestClient

from simfire.main import app, search, simulate


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def shot_settings():
    return {
        "identifier": "Api",
        "velocity": 50.0,
        "cd": 0.47,
        "mass": 0.1,
        "bullet_size": 0.05,
        "tgt_x": 100.0,
        "tgt_size": 0.5,
        "density": 0.0,
        "runs_in_generation": 4,
        "max_generations": 2,
        "threads": 2,
        "seed": 3,
    }


def test_simulate_hit(client, shot_settings):
    response = client.post("/api/simulate", json={
        "settings": shot_settings, "aim_x": 100.0, "aim_z": 20.44,
    })
    assert response.status_code == 200

    data = response.json()
    assert data["success"] is True
    assert data["run"]["hit"] is True
    assert data["run"]["result"] == "ended_collision"
    assert len(data["points"]) > 0
    assert data["points"][-1]["t"] == pytest.approx(data["run"]["elapsed_time"])


def test_simulate_without_points(client, shot_settings):
    response = client.post("/api/simulate", json={
        "settings": shot_settings, "aim_x": 100.0, "aim_z": 1.0, "include_points": False,
    })
    data = response.json()
    assert data["points"] == []
    assert data["run"]["flags"] == "FBN"
    assert data["run"]["result"] == "ended_no_active"


def test_simulate_zero_aim(client, shot_settings):
    response = client.post("/api/simulate", json={
        "settings": shot_settings, "aim_x": 0.0, "aim_z": 0.0,
    })
    data = response.json()
    assert data["run"]["result"] == "error"
    assert data["run"]["min_distance"] is None


def test_invalid_settings_rejected(client, shot_settings):
    shot_settings["velocity"] = 0.0
    response = client.post("/api/simulate", json={
        "settings": shot_settings, "aim_x": 100.0, "aim_z": 20.44,
    })
    assert response.status_code == 422
    assert "Velocity must be positive" in response.json()["detail"]


def test_missing_field_rejected(client, shot_settings):
    del shot_settings["mass"]
    response = client.post("/api/search", json={"settings": shot_settings})
    assert response.status_code == 422


def test_search(client, shot_settings):
    response = client.post("/api/search", json={"settings": shot_settings, "best_count": 2})
    assert response.status_code == 200

    data = response.json()
    assert 1 <= data["generations"] <= 2
    assert len(data["history"]) == data["generations"]
    assert data["hit"] == (len(data["hits"]) > 0)
    assert len(data["best"]) == 2


def test_endpoints_run_in_the_threadpool():
    assert not inspect.iscoroutinefunction(simulate)
    assert not inspect.iscoroutinefunction(search)
