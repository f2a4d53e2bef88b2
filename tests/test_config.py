from __future__ import annotations

from datetime import datetime

from repstack import config as config_module
from repstack.config import AppConfig, get_config


def _write(tmp_path, monkeypatch, text: str):
    path = tmp_path / "repstack.toml"
    path.write_text(text, encoding="utf-8")
    monkeypatch.setenv("REPSTACK_CONFIG", str(path))
    get_config.cache_clear()
    return path


def test_defaults_when_no_file() -> None:
    assert get_config() == AppConfig()
    assert config_module.as_dict()["source"] == "defaults"


def test_section_values_are_loaded(tmp_path, monkeypatch) -> None:
    path = _write(
        tmp_path,
        monkeypatch,
        "[repstack]\n"
        "future_tolerance_seconds = 300\n"
        "deload_set_factor = 0.5\n"
        "default_target_reps = 12\n"
        "reset_on_migration_error = \"no\"\n",
    )
    config = get_config()
    assert config.future_tolerance_seconds == 300.0
    assert config.deload_set_factor == 0.5
    assert config.default_target_reps == 12
    assert config.reset_on_migration_error is False
    assert config_module.as_dict()["source"] == str(path)


def test_out_of_range_values_fall_back(tmp_path, monkeypatch) -> None:
    _write(
        tmp_path,
        monkeypatch,
        "deload_set_factor = 3.0\ndefault_target_reps = \"many\"\nreset_on_migration_error = \"maybe\"\n",
    )
    config = get_config()
    assert config.deload_set_factor == AppConfig().deload_set_factor
    assert config.default_target_reps == AppConfig().default_target_reps
    assert config.reset_on_migration_error is True


def test_deload_factor_shapes_drafts(tmp_path, monkeypatch, store) -> None:
    _write(tmp_path, monkeypatch, "[repstack]\ndeload_set_factor = 0.25\n")
    exercise_id = store.create_exercise({"name": "Squat", "category": "barbell", "muscle_groups": ["quads"]})
    mesocycle_id = store.create_mesocycle(
        {
            "name": "Block",
            "start_date": "2024-01-01T00:00:00",
            "end_date": "2024-01-28T00:00:00",
            "status": "active",
            "split_days": [
                {"id": "legs", "name": "Legs", "day_order": 1,
                 "exercises": [{"exercise_id": exercise_id, "target_sets": 8}]},
            ],
        }
    )
    draft = store.progression.start_workout_from_split(mesocycle_id, "legs", now=datetime(2024, 1, 24, 9))
    assert len(draft.exercises[0].sets) == 2
