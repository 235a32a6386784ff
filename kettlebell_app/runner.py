"""
Session runner: walks a generated workout exercise by exercise.

State is a plain JSON-serialisable dict so it can live in the Flask session
between requests. Every helper mutates the dict it is given and returns it.
"""

from datetime import datetime

from .generate import estimate_exercise_minutes, prescribe
from .storage import calc_duration_minutes, compute_total_volume
from .units import KETTLEBELL_WEIGHTS_KG

DEFAULT_WEIGHT_KG = 16


def _entry(item, weight_kg):
    exercise = item.exercise
    return {
        "exercise_id": exercise.id,
        "name": exercise.name,
        "muscle_group": exercise.muscle_group,
        "sets": item.sets,
        "reps": item.reps,
        "completed_sets": [],
        "weight": weight_kg,
        "current_reps": item.reps,
        "skipped": False,
    }


def start_session(workout, energy_level, duration, muscle_groups, user, default_weight_kg=DEFAULT_WEIGHT_KG):
    return {
        "user": user,
        "energy_level": energy_level,
        "duration": duration,
        "muscle_groups": list(muscle_groups),
        "exercises": [_entry(item, default_weight_kg) for item in workout],
        "index": 0,
        "started_at": None,
        "ended_at": None,
        "logged": False,
        "workout_id": None,
        "rating": None,
        "notes": "",
    }


def begin_session(state):
    state["index"] = 0
    state["started_at"] = datetime.now().isoformat()
    state["ended_at"] = None
    return state


def restart_session(state):
    for entry in state.get("exercises", []):
        entry["completed_sets"] = []
        entry["current_reps"] = entry["reps"]
        entry["skipped"] = False
    state["logged"] = False
    state["workout_id"] = None
    state["rating"] = None
    state["notes"] = ""
    return begin_session(state)


def current_exercise(state):
    exercises = state.get("exercises", [])
    idx = int(state.get("index", 0))
    if 0 <= idx < len(exercises):
        return exercises[idx]
    return None


def is_finished(state) -> bool:
    return int(state.get("index", 0)) >= len(state.get("exercises", []))


def _advance(state):
    state["index"] = int(state.get("index", 0)) + 1
    if is_finished(state) and not state.get("ended_at"):
        state["ended_at"] = datetime.now().isoformat()


# ───────── Preview editing ─────────

def move_exercise(state, index: int, direction: str) -> bool:
    exercises = state.get("exercises", [])
    new_index = index - 1 if direction == "up" else index + 1
    if not (0 <= index < len(exercises)) or not (0 <= new_index < len(exercises)):
        return False
    exercises[index], exercises[new_index] = exercises[new_index], exercises[index]
    return True


def remove_exercise(state, index: int) -> bool:
    exercises = state.get("exercises", [])
    if not (0 <= index < len(exercises)):
        return False
    del exercises[index]
    return True


def swap_exercise(state, index: int, exercise) -> bool:
    """Replace the exercise at ``index``, re-prescribed for the session's energy level."""
    exercises = state.get("exercises", [])
    if not (0 <= index < len(exercises)):
        return False
    weight = exercises[index].get("weight", DEFAULT_WEIGHT_KG)
    exercises[index] = _entry(prescribe(exercise, state["energy_level"]), weight)
    return True


def preview_totals(state):
    exercises = state.get("exercises", [])
    minutes = sum(estimate_exercise_minutes(e["sets"], state["energy_level"]) for e in exercises)
    return {
        "exercises": len(exercises),
        "sets": sum(e["sets"] for e in exercises),
        "reps": sum(e["sets"] * e["reps"] for e in exercises),
        "estimated_minutes": round(minutes),
    }


# ───────── Running ─────────

def complete_set(state):
    entry = current_exercise(state)
    if entry is None:
        return state
    entry["completed_sets"].append(entry["current_reps"])
    if len(entry["completed_sets"]) >= entry["sets"]:
        _advance(state)
    return state


def skip_exercise(state):
    entry = current_exercise(state)
    if entry is None:
        return state
    entry["skipped"] = True
    _advance(state)
    return state


def adjust_weight(state, direction: str):
    """Step to the next standard kettlebell size."""
    entry = current_exercise(state)
    if entry is None:
        return state
    weight = entry.get("weight", DEFAULT_WEIGHT_KG)
    if direction == "up":
        heavier = [w for w in KETTLEBELL_WEIGHTS_KG if w > weight]
        entry["weight"] = heavier[0] if heavier else KETTLEBELL_WEIGHTS_KG[-1]
    else:
        lighter = [w for w in KETTLEBELL_WEIGHTS_KG if w < weight]
        entry["weight"] = lighter[-1] if lighter else KETTLEBELL_WEIGHTS_KG[0]
    return state


def adjust_reps(state, direction: str):
    entry = current_exercise(state)
    if entry is None:
        return state
    if direction == "up":
        entry["current_reps"] += 1
    else:
        entry["current_reps"] = max(1, entry["current_reps"] - 1)
    return state


# ───────── Finishing ─────────

def exercise_outcomes(state):
    outcomes = []
    for order_index, entry in enumerate(state.get("exercises", [])):
        completed_sets = list(entry.get("completed_sets", []))
        outcomes.append({
            "exercise_id": entry["exercise_id"],
            "name": entry["name"],
            "muscle_group": entry["muscle_group"],
            "order_index": order_index,
            "planned_sets": entry["sets"],
            "planned_reps": entry["reps"],
            "actual_sets": len(completed_sets),
            "actual_reps": completed_sets,
            "weight": entry.get("weight"),
            "completed": not entry.get("skipped") and len(completed_sets) >= entry["sets"],
            "skipped": bool(entry.get("skipped")),
        })
    return outcomes


def summarise_session(state):
    outcomes = exercise_outcomes(state)
    return {
        "total_sets": sum(o["actual_sets"] for o in outcomes),
        "total_reps": sum(sum(o["actual_reps"]) for o in outcomes),
        "total_volume": compute_total_volume(outcomes),
        "completed": sum(1 for o in outcomes if o["completed"]),
        "skipped": sum(1 for o in outcomes if o["skipped"]),
        "duration_minutes": calc_duration_minutes(state.get("started_at"), state.get("ended_at")),
    }


def build_workout_record(state):
    """Payload handed to the workout store once a session is finished."""
    return {
        "energy_level": state.get("energy_level"),
        "duration": state.get("duration"),
        "muscle_groups": list(state.get("muscle_groups", [])),
        "started_at": state.get("started_at"),
        "completed_at": state.get("ended_at") or datetime.now().isoformat(),
        "exercises": exercise_outcomes(state),
        "rating": state.get("rating"),
        "notes": state.get("notes") or "",
    }
