import os
import json
import threading
import uuid
from datetime import datetime, timedelta

from .defaults import DEFAULT_SETTINGS, ENERGY_PROFILES

# Serialise read-modify-write cycles on the data files within this process
_WORKOUTS_LOCK = threading.Lock()
_SETTINGS_LOCK = threading.Lock()


class StorageError(Exception):
    pass


class WorkoutNotFound(StorageError, LookupError):
    pass


class WorkoutAccessDenied(StorageError, PermissionError):
    pass


class InvalidWorkout(StorageError, ValueError):
    pass


class CorruptDataFile(StorageError, OSError):
    pass


def ensure_data_files(data_dir: str) -> str:
    os.makedirs(data_dir, exist_ok=True)

    settings_path = os.path.join(data_dir, "settings.json")
    workouts_path = os.path.join(data_dir, "workouts.json")

    if not os.path.exists(settings_path):
        with open(settings_path, "w") as f:
            json.dump(DEFAULT_SETTINGS, f, indent=2)

    if not os.path.exists(workouts_path):
        with open(workouts_path, "w") as f:
            json.dump([], f)

    return data_dir


def load_json(path: str, fallback):
    try:
        with open(path, "r") as f:
            return json.load(f)
    except (OSError, ValueError):
        return fallback


def save_json(path: str, data):
    tmp_path = path + ".tmp"
    with open(tmp_path, "w") as f:
        json.dump(data, f, indent=2)
    os.replace(tmp_path, path)


# ───────── Settings ─────────

def load_settings(path: str):
    data = load_json(path, {})
    if not isinstance(data, dict):
        data = {}
    for key, val in DEFAULT_SETTINGS.items():
        if key not in data:
            data[key] = json.loads(json.dumps(val))
    return data


def save_settings(path: str, settings: dict):
    save_json(path, settings)


def load_user_preferences(path: str, username: str):
    settings = load_settings(path)
    prefs = dict(settings["preferences"].get(username) or {})
    prefs.setdefault("units", settings["default_units"])
    prefs.setdefault("default_weight_kg", settings["default_weight_kg"])
    return prefs


def save_user_preferences(path: str, username: str, prefs: dict):
    with _SETTINGS_LOCK:
        settings = load_settings(path)
        current = settings["preferences"].get(username) or {}
        current.update(prefs)
        settings["preferences"][username] = current
        save_settings(path, settings)


# ───────── Time helpers ─────────

def parse_timestamp(value):
    """ISO-8601 string to a naive local datetime. Accepts a trailing 'Z'."""
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    if dt.tzinfo is not None:
        dt = dt.astimezone().replace(tzinfo=None)
    return dt


def calc_duration_minutes(start_iso, end_iso):
    try:
        start = parse_timestamp(start_iso)
        end = parse_timestamp(end_iso)
    except (TypeError, ValueError):
        return 0
    if end < start:
        return 0
    return int((end - start).total_seconds() // 60)


# ───────── Workouts ─────────

def compute_total_volume(exercises) -> int:
    """Sum of weight x reps over every completed set."""
    volume = 0.0
    for ex in exercises:
        weight = ex.get("weight") or 0
        volume += weight * sum(ex.get("actual_reps") or [])
    return int(round(volume))


def _normalise_timestamp(value, field):
    if value in (None, ""):
        return None
    try:
        return parse_timestamp(value).isoformat()
    except (TypeError, ValueError):
        raise InvalidWorkout(f"{field} must be an ISO-8601 timestamp")


def _normalise_rating(value):
    if value in (None, ""):
        return None
    try:
        rating = int(value)
    except (TypeError, ValueError):
        raise InvalidWorkout("rating must be an integer between 1 and 5")
    if not 1 <= rating <= 5:
        raise InvalidWorkout("rating must be an integer between 1 and 5")
    return rating


def _normalise_reps(value):
    if value is None:
        return []
    if isinstance(value, str):
        # Older clients sent the rep list JSON-encoded
        try:
            value = json.loads(value)
        except ValueError:
            raise InvalidWorkout("actual_reps must be a list of integers")
    if not isinstance(value, list):
        raise InvalidWorkout("actual_reps must be a list of integers")
    try:
        return [int(r) for r in value]
    except (TypeError, ValueError):
        raise InvalidWorkout("actual_reps must be a list of integers")


def _normalise_outcome(raw, position):
    if not isinstance(raw, dict):
        raise InvalidWorkout("each exercise must be an object")
    exercise_id = raw.get("exercise_id")
    if not exercise_id:
        raise InvalidWorkout("each exercise needs an exercise_id")

    actual_reps = _normalise_reps(raw.get("actual_reps"))
    weight = raw.get("weight")
    try:
        order_index = int(raw.get("order_index", position))
        weight = float(weight) if weight not in (None, "") else None
        actual_sets = int(raw["actual_sets"]) if raw.get("actual_sets") is not None else len(actual_reps)
        planned_sets = int(raw.get("planned_sets") or 0)
        planned_reps = int(raw.get("planned_reps") or 0)
    except (TypeError, ValueError):
        raise InvalidWorkout(f"exercise {exercise_id}: numeric fields are malformed")

    return {
        "exercise_id": exercise_id,
        "name": raw.get("name") or exercise_id,
        "muscle_group": raw.get("muscle_group"),
        "order_index": order_index,
        "planned_sets": planned_sets,
        "planned_reps": planned_reps,
        "actual_sets": actual_sets,
        "actual_reps": actual_reps,
        "weight": weight,
        "completed": bool(raw.get("completed")),
        "skipped": bool(raw.get("skipped")),
    }


def _normalise_muscle_groups(value):
    if value is None:
        return []
    if isinstance(value, str):
        return [g.strip() for g in value.split(",") if g.strip()]
    if isinstance(value, (list, tuple)):
        return [str(g) for g in value]
    raise InvalidWorkout("muscle_groups must be a list")


def _load_workouts(path):
    data = load_json(path, [])
    return data if isinstance(data, list) else []


def _load_workouts_for_write(path):
    """Like _load_workouts, but refuses to hand back an empty list for a file it cannot read."""
    try:
        with open(path, "r") as f:
            data = json.load(f)
    except FileNotFoundError:
        return []
    except ValueError as e:
        raise CorruptDataFile(f"{path} is not valid JSON: {e}")
    if not isinstance(data, list):
        raise CorruptDataFile(f"{path} does not hold a list of workouts")
    return data


def _owned(records, workout_id, user):
    for record in records:
        if record.get("id") == workout_id:
            if record.get("user") != user:
                raise WorkoutAccessDenied(workout_id)
            return record
    raise WorkoutNotFound(workout_id)


def create_workout(path: str, user: str, payload: dict):
    if not isinstance(payload, dict):
        raise InvalidWorkout("workout payload must be an object")

    energy_level = payload.get("energy_level")
    if energy_level not in ENERGY_PROFILES:
        raise InvalidWorkout("energy_level must be one of low, medium, high")
    try:
        duration = int(payload.get("duration"))
    except (TypeError, ValueError):
        raise InvalidWorkout("duration must be a positive integer")
    if duration <= 0:
        raise InvalidWorkout("duration must be a positive integer")

    raw_exercises = payload.get("exercises") or []
    if not isinstance(raw_exercises, list):
        raise InvalidWorkout("exercises must be a list")
    exercises = [_normalise_outcome(ex, i) for i, ex in enumerate(raw_exercises)]
    exercises.sort(key=lambda ex: ex["order_index"])

    now = datetime.now().isoformat()
    record = {
        "id": uuid.uuid4().hex,
        "user": user,
        "energy_level": energy_level,
        "duration": duration,
        "muscle_groups": _normalise_muscle_groups(payload.get("muscle_groups")),
        "created_at": _normalise_timestamp(payload.get("started_at"), "started_at") or now,
        "completed_at": _normalise_timestamp(payload.get("completed_at"), "completed_at") or now,
        "exercises": exercises,
        "total_volume": compute_total_volume(exercises),
        "notes": payload.get("notes") or "",
        "rating": _normalise_rating(payload.get("rating")),
    }

    with _WORKOUTS_LOCK:
        records = _load_workouts_for_write(path)
        records.append(record)
        save_json(path, records)
    return record


def get_workout(path: str, workout_id: str, user: str):
    record = _owned(_load_workouts(path), workout_id, user)
    record["exercises"].sort(key=lambda ex: ex["order_index"])
    return record


def list_workouts(path: str, user: str, limit: int = 20, offset: int = 0):
    """A user's workouts, most recently completed first."""
    records = [r for r in _load_workouts(path) if r.get("user") == user]
    records.sort(key=lambda r: r.get("completed_at") or "", reverse=True)
    offset = max(0, offset)
    if limit is None:
        return records[offset:]
    return records[offset:offset + max(0, limit)]


def update_workout(path: str, workout_id: str, user: str, changes: dict):
    if not isinstance(changes, dict):
        raise InvalidWorkout("changes must be an object")

    with _WORKOUTS_LOCK:
        records = _load_workouts_for_write(path)
        record = _owned(records, workout_id, user)

        if changes.get("exercises") is not None:
            if not isinstance(changes["exercises"], list):
                raise InvalidWorkout("exercises must be a list")
            by_key = {(ex["exercise_id"], ex["order_index"]): ex for ex in record["exercises"]}
            for position, raw in enumerate(changes["exercises"]):
                update = _normalise_outcome(raw, position)
                key = (update["exercise_id"], update["order_index"])
                if key not in by_key:
                    raise InvalidWorkout(
                        f"workout has no exercise {update['exercise_id']} at position {update['order_index']}"
                    )
                target = by_key[key]
                for field in ("actual_sets", "actual_reps", "weight", "completed", "skipped"):
                    if field in raw:
                        target[field] = update[field]
                if "actual_reps" in raw and "actual_sets" not in raw:
                    target["actual_sets"] = len(target["actual_reps"])
            record["total_volume"] = compute_total_volume(record["exercises"])

        if changes.get("completed_at"):
            record["completed_at"] = _normalise_timestamp(changes["completed_at"], "completed_at")
        if "notes" in changes:
            record["notes"] = changes.get("notes") or ""
        if "rating" in changes:
            record["rating"] = _normalise_rating(changes.get("rating"))

        save_json(path, records)
    return record


def delete_workout(path: str, workout_id: str, user: str):
    with _WORKOUTS_LOCK:
        records = _load_workouts_for_write(path)
        record = _owned(records, workout_id, user)
        records = [r for r in records if r is not record]
        save_json(path, records)
    return record


# ───────── History ─────────

def summarise_history(records, now=None):
    """Session counts, minutes and volume over a few rolling windows."""
    now = now or datetime.now()
    week_ago = now - timedelta(days=7)
    counters = {
        "all": {"minutes": 0, "count": 0, "volume": 0},
        "week": {"minutes": 0, "count": 0, "volume": 0},
        "month": {"minutes": 0, "count": 0, "volume": 0},
        "year": {"minutes": 0, "count": 0, "volume": 0},
    }

    for record in records:
        if not record.get("completed_at"):
            continue
        try:
            completed = parse_timestamp(record["completed_at"])
        except (TypeError, ValueError):
            continue
        minutes = record.get("duration") or 0
        volume = record.get("total_volume") or 0

        buckets = ["all"]
        if completed >= week_ago:
            buckets.append("week")
        if completed.month == now.month and completed.year == now.year:
            buckets.append("month")
        if completed.year == now.year:
            buckets.append("year")
        for bucket in buckets:
            counters[bucket]["minutes"] += minutes
            counters[bucket]["count"] += 1
            counters[bucket]["volume"] += volume

    total = counters["all"]["count"]
    counters["average_minutes"] = round(counters["all"]["minutes"] / total) if total else 0
    return counters
