import json
import os
import threading
from datetime import datetime, timedelta

import pytest

from kettlebell_app.storage import (
    CorruptDataFile,
    InvalidWorkout,
    WorkoutAccessDenied,
    WorkoutNotFound,
    calc_duration_minutes,
    compute_total_volume,
    create_workout,
    delete_workout,
    ensure_data_files,
    get_workout,
    list_workouts,
    load_json,
    load_settings,
    load_user_preferences,
    save_json,
    save_user_preferences,
    summarise_history,
    update_workout,
)


@pytest.fixture
def workouts_path(tmp_path):
    data_dir = ensure_data_files(str(tmp_path / "data"))
    return os.path.join(data_dir, "workouts.json")


def _payload(**overrides):
    payload = {
        "energy_level": "medium",
        "duration": 30,
        "muscle_groups": ["back", "core"],
        "started_at": "2026-03-01T10:00:00",
        "completed_at": "2026-03-01T10:28:00",
        "exercises": [
            {
                "exercise_id": "single-arm-row",
                "name": "Single-Arm Row",
                "order_index": 1,
                "planned_sets": 3,
                "planned_reps": 12,
                "actual_reps": [12, 12, 10],
                "weight": 16,
                "completed": True,
                "skipped": False,
            },
            {
                "exercise_id": "russian-twist",
                "name": "Russian Twist",
                "order_index": 0,
                "planned_sets": 3,
                "planned_reps": 20,
                "actual_reps": [],
                "weight": None,
                "completed": False,
                "skipped": True,
            },
        ],
    }
    payload.update(overrides)
    return payload


def test_ensure_data_files_seeds_defaults(tmp_path):
    data_dir = ensure_data_files(str(tmp_path / "nested" / "data"))
    assert load_json(os.path.join(data_dir, "workouts.json"), None) == []
    assert load_json(os.path.join(data_dir, "settings.json"), None)["default_weight_kg"] == 16


def test_load_json_falls_back(tmp_path):
    broken = tmp_path / "broken.json"
    broken.write_text("{not json")
    assert load_json(str(broken), []) == []
    assert load_json(str(tmp_path / "missing.json"), {"a": 1}) == {"a": 1}


def test_save_json_replaces_atomically(tmp_path):
    path = str(tmp_path / "data.json")
    save_json(path, {"a": 1})
    save_json(path, {"a": 2})
    assert load_json(path, None) == {"a": 2}
    assert not os.path.exists(path + ".tmp")


def test_settings_fill_missing_keys(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"default_units": "kg"}))
    settings = load_settings(str(path))
    assert settings["default_units"] == "kg"
    assert settings["default_weight_kg"] == 16
    assert settings["preferences"] == {}


def test_user_preferences_round_trip(tmp_path):
    path = str(tmp_path / "settings.json")
    assert load_user_preferences(path, "alice") == {"units": "lbs", "default_weight_kg": 16}
    save_user_preferences(path, "alice", {"units": "kg"})
    assert load_user_preferences(path, "alice")["units"] == "kg"
    assert load_user_preferences(path, "bob")["units"] == "lbs"


def test_compute_total_volume():
    exercises = [
        {"weight": 16, "actual_reps": [10, 10, 8]},
        {"weight": 12.5, "actual_reps": [6]},
        {"weight": None, "actual_reps": [20]},
        {"weight": 24, "actual_reps": []},
    ]
    assert compute_total_volume(exercises) == 16 * 28 + 75
    assert compute_total_volume([]) == 0


def test_calc_duration_minutes():
    assert calc_duration_minutes("2026-03-01T10:00:00", "2026-03-01T10:28:59") == 28
    assert calc_duration_minutes("2026-03-01T10:00:00", "2026-03-01T09:00:00") == 0
    assert calc_duration_minutes(None, "2026-03-01T09:00:00") == 0
    assert calc_duration_minutes("2026-03-01T10:00:00Z", "2026-03-01T10:30:00Z") == 30


def test_create_workout(workouts_path):
    record = create_workout(workouts_path, "alice", _payload())
    assert record["id"]
    assert record["user"] == "alice"
    assert record["total_volume"] == 16 * 34
    assert [e["order_index"] for e in record["exercises"]] == [0, 1]
    assert record["exercises"][1]["actual_sets"] == 3
    assert record["created_at"] == "2026-03-01T10:00:00"
    assert load_json(workouts_path, [])[0]["id"] == record["id"]


def test_create_workout_defaults_timestamps(workouts_path):
    record = create_workout(workouts_path, "alice", _payload(started_at=None, completed_at=None))
    assert record["created_at"]
    assert record["completed_at"]


def test_create_workout_accepts_comma_separated_groups(workouts_path):
    record = create_workout(workouts_path, "alice", _payload(muscle_groups="back, core"))
    assert record["muscle_groups"] == ["back", "core"]


def test_create_workout_accepts_json_encoded_reps(workouts_path):
    payload = _payload()
    payload["exercises"][0]["actual_reps"] = "[10, 10]"
    record = create_workout(workouts_path, "alice", payload)
    assert record["exercises"][1]["actual_reps"] == [10, 10]


@pytest.mark.parametrize("overrides", [
    {"energy_level": "extreme"},
    {"duration": 0},
    {"duration": "soon"},
    {"exercises": "lots"},
    {"exercises": [{"name": "no id"}]},
    {"exercises": [{"exercise_id": "x", "actual_reps": ["a"]}]},
    {"rating": 9},
    {"completed_at": "yesterday"},
])
def test_create_workout_rejects_bad_payloads(workouts_path, overrides):
    with pytest.raises(InvalidWorkout):
        create_workout(workouts_path, "alice", _payload(**overrides))
    assert load_json(workouts_path, None) == []


def test_get_workout_checks_ownership(workouts_path):
    record = create_workout(workouts_path, "alice", _payload())
    assert get_workout(workouts_path, record["id"], "alice")["id"] == record["id"]
    with pytest.raises(WorkoutAccessDenied):
        get_workout(workouts_path, record["id"], "bob")
    with pytest.raises(WorkoutNotFound):
        get_workout(workouts_path, "missing", "alice")


def test_list_workouts_newest_first_and_paginated(workouts_path):
    base = datetime(2026, 3, 1, 9, 0)
    for day in range(5):
        create_workout(workouts_path, "alice", _payload(
            started_at=None,
            completed_at=(base + timedelta(days=day)).isoformat(),
            notes=f"day {day}",
        ))
    create_workout(workouts_path, "bob", _payload())

    records = list_workouts(workouts_path, "alice")
    assert [r["notes"] for r in records] == ["day 4", "day 3", "day 2", "day 1", "day 0"]
    page = list_workouts(workouts_path, "alice", limit=2, offset=1)
    assert [r["notes"] for r in page] == ["day 3", "day 2"]
    assert len(list_workouts(workouts_path, "bob")) == 1


def test_update_workout_recomputes_volume(workouts_path):
    record = create_workout(workouts_path, "alice", _payload())
    updated = update_workout(workouts_path, record["id"], "alice", {
        "exercises": [
            {"exercise_id": "single-arm-row", "order_index": 1, "actual_reps": [12, 12], "weight": 20},
        ],
        "notes": "Felt strong",
        "rating": 5,
    })
    row = updated["exercises"][1]
    assert row["actual_reps"] == [12, 12]
    assert row["actual_sets"] == 2
    assert row["weight"] == 20
    assert updated["total_volume"] == 20 * 24
    assert updated["notes"] == "Felt strong"
    assert updated["rating"] == 5
    assert get_workout(workouts_path, record["id"], "alice")["total_volume"] == 480


def test_update_workout_metadata_only(workouts_path):
    record = create_workout(workouts_path, "alice", _payload())
    updated = update_workout(workouts_path, record["id"], "alice", {
        "completed_at": "2026-03-02T08:00:00",
    })
    assert updated["completed_at"] == "2026-03-02T08:00:00"
    assert updated["total_volume"] == record["total_volume"]
    assert updated["notes"] == ""


def test_update_workout_unknown_exercise(workouts_path):
    record = create_workout(workouts_path, "alice", _payload())
    with pytest.raises(InvalidWorkout):
        update_workout(workouts_path, record["id"], "alice", {
            "exercises": [{"exercise_id": "single-arm-row", "order_index": 5, "actual_reps": [1]}],
        })


def test_update_and_delete_check_ownership(workouts_path):
    record = create_workout(workouts_path, "alice", _payload())
    with pytest.raises(WorkoutAccessDenied):
        update_workout(workouts_path, record["id"], "bob", {"notes": "mine now"})
    with pytest.raises(WorkoutAccessDenied):
        delete_workout(workouts_path, record["id"], "bob")
    with pytest.raises(WorkoutNotFound):
        delete_workout(workouts_path, "missing", "alice")


def test_delete_workout(workouts_path):
    keep = create_workout(workouts_path, "alice", _payload())
    drop = create_workout(workouts_path, "alice", _payload())
    delete_workout(workouts_path, drop["id"], "alice")
    assert [r["id"] for r in list_workouts(workouts_path, "alice")] == [keep["id"]]


def test_summarise_history():
    now = datetime(2026, 3, 15, 12, 0)
    records = [
        {"completed_at": "2026-03-14T10:00:00", "duration": 30, "total_volume": 1000},
        {"completed_at": "2026-03-02T10:00:00", "duration": 45, "total_volume": 500},
        {"completed_at": "2026-01-10T10:00:00", "duration": 15, "total_volume": 100},
        {"completed_at": "2025-12-31T10:00:00", "duration": 60, "total_volume": 0},
        {"completed_at": None, "duration": 60},
    ]
    stats = summarise_history(records, now)
    assert stats["all"] == {"minutes": 150, "count": 4, "volume": 1600}
    assert stats["week"] == {"minutes": 30, "count": 1, "volume": 1000}
    assert stats["month"]["count"] == 2
    assert stats["year"]["count"] == 3
    assert stats["average_minutes"] == 38


def test_summarise_history_empty():
    assert summarise_history([])["average_minutes"] == 0


def test_user_preferences_concurrent_saves_keep_every_user(tmp_path):
    path = str(tmp_path / "settings.json")
    users = [f"user{i}" for i in range(20)]
    threads = [
        threading.Thread(target=save_user_preferences, args=(path, name, {"units": "kg"}))
        for name in users
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert sorted(load_settings(path)["preferences"]) == sorted(users)


def _truncate(path, nbytes=2):
    with open(path, "rb+") as f:
        f.seek(0, os.SEEK_END)
        f.truncate(f.tell() - nbytes)


@pytest.mark.parametrize("write", [
    lambda path, record: create_workout(path, "bob", _payload()),
    lambda path, record: update_workout(path, record["id"], "alice", {"notes": "edited"}),
    lambda path, record: delete_workout(path, record["id"], "alice"),
])
def test_writes_refuse_a_corrupt_workouts_file(workouts_path, write):
    record = create_workout(workouts_path, "alice", _payload())
    create_workout(workouts_path, "alice", _payload())
    _truncate(workouts_path)
    with open(workouts_path) as f:
        damaged = f.read()

    with pytest.raises(CorruptDataFile):
        write(workouts_path, record)

    with open(workouts_path) as f:
        assert f.read() == damaged
    # reads still degrade to an empty history
    assert list_workouts(workouts_path, "alice") == []


def test_writes_refuse_a_non_list_workouts_file(workouts_path):
    save_json(workouts_path, {"oops": True})
    with pytest.raises(CorruptDataFile):
        create_workout(workouts_path, "alice", _payload())
    assert load_json(workouts_path, None) == {"oops": True}


def test_create_workout_without_a_file_starts_fresh(tmp_path):
    path = str(tmp_path / "workouts.json")
    record = create_workout(path, "alice", _payload())
    assert [r["id"] for r in list_workouts(path, "alice")] == [record["id"]]
