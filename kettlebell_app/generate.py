import math
import random
from dataclasses import dataclass

from .catalog import ExerciseDefinition
from .defaults import ENERGY_PROFILES

ENERGY_LEVELS = ("low", "medium", "high")

ENERGY_LEVEL_DESCRIPTIONS = {
    "low": "Easier workout, longer rests",
    "medium": "Balanced intensity",
    "high": "Challenging, shorter rests",
}

DURATION_OPTIONS = (15, 30, 45, 60)

# Warm-up and cool-down happen outside the generated list
RESERVE_MINUTES = 5
# Working time per set, the same at every energy level
SECONDS_PER_SET = 45
# Rough per-exercise cost used to size each group's share
MINUTES_PER_EXERCISE = 4
# The fill pass stops once we are within this many minutes of the target
FILL_SLACK_MINUTES = 3


@dataclass(frozen=True)
class PrescribedExercise:
    exercise: ExerciseDefinition
    sets: int
    reps: int

    def to_dict(self):
        return {
            "exercise": self.exercise.to_dict(),
            "sets": self.sets,
            "reps": self.reps,
        }


def _profile(energy_level: str) -> dict:
    try:
        return ENERGY_PROFILES[energy_level]
    except KeyError:
        raise ValueError(f"unknown energy level {energy_level!r}")


def allowed_difficulties(energy_level: str) -> tuple:
    return tuple(_profile(energy_level)["difficulties"])


def rest_seconds(energy_level: str) -> int:
    return _profile(energy_level)["rest_seconds"]


def adjust_sets(default_sets: int, energy_level: str) -> int:
    profile = _profile(energy_level)
    return max(profile["set_floor"], default_sets + profile["set_delta"])


def adjust_reps(default_reps: int, energy_level: str) -> int:
    profile = _profile(energy_level)
    scaled = default_reps * profile["rep_factor"]
    if profile["rep_rounding"] == "ceil":
        scaled = math.ceil(scaled)
    else:
        scaled = math.floor(scaled)
    return max(profile["rep_floor"], scaled)


def estimate_exercise_minutes(sets: int, energy_level: str) -> float:
    """Working time plus rest for every set, in minutes."""
    return (SECONDS_PER_SET + rest_seconds(energy_level)) * sets / 60


def estimate_workout_minutes(workout, energy_level: str) -> float:
    return sum(estimate_exercise_minutes(p.sets, energy_level) for p in workout)


def prescribe(exercise: ExerciseDefinition, energy_level: str) -> PrescribedExercise:
    return PrescribedExercise(
        exercise=exercise,
        sets=adjust_sets(exercise.default_sets, energy_level),
        reps=adjust_reps(exercise.default_reps, energy_level),
    )


def generate_workout(catalog, muscle_groups, energy_level: str, duration_minutes: int, rng=random):
    """
    Build a shuffled list of PrescribedExercise that fits inside
    ``duration_minutes`` minus the warm-up reserve.

    Each requested group first gets an even share of exercises, then a fill
    pass tops the session up from any requested group until we are within
    FILL_SLACK_MINUTES of the target or nothing else fits. An empty list is a
    normal result (no groups, too short, or nothing eligible).
    """
    allowed = allowed_difficulties(energy_level)

    groups = []
    for group in muscle_groups or []:
        if group not in groups:
            groups.append(group)

    target = duration_minutes - RESERVE_MINUTES
    if not groups or target <= 0:
        return []

    per_group = math.ceil(target / (len(groups) * MINUTES_PER_EXERCISE))

    workout = []
    total = 0.0

    for group in groups:
        pool = [e for e in catalog.by_muscle_group(group) if e.difficulty in allowed]
        rng.shuffle(pool)

        for exercise in pool[:per_group]:
            item = prescribe(exercise, energy_level)
            minutes = estimate_exercise_minutes(item.sets, energy_level)
            if total + minutes > target:
                break
            workout.append(item)
            total += minutes

    while total < target - FILL_SLACK_MINUTES:
        used = {item.exercise.name for item in workout}
        pool = [
            e for e in catalog
            if e.muscle_group in groups
            and e.name not in used
            and e.difficulty in allowed
        ]
        if not pool:
            break

        rng.shuffle(pool)
        item = prescribe(pool[0], energy_level)
        minutes = estimate_exercise_minutes(item.sets, energy_level)
        if total + minutes > target:
            break
        workout.append(item)
        total += minutes

    # Interleave muscle groups
    rng.shuffle(workout)
    return workout
