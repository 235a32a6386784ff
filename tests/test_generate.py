import math
import random

import pytest

from kettlebell_app.catalog import DEFAULT_CATALOG, build_catalog
from kettlebell_app.generate import (
    ENERGY_LEVELS,
    RESERVE_MINUTES,
    SECONDS_PER_SET,
    PrescribedExercise,
    adjust_reps,
    adjust_sets,
    allowed_difficulties,
    estimate_exercise_minutes,
    estimate_workout_minutes,
    generate_workout,
    prescribe,
)


class NoShuffle:
    """Keeps catalog order so selection is predictable."""

    def shuffle(self, items):
        pass


def test_allowed_difficulties_are_nested():
    low, medium, high = (set(allowed_difficulties(level)) for level in ENERGY_LEVELS)
    assert low == {"beginner"}
    assert medium == {"beginner", "intermediate"}
    assert high == {"beginner", "intermediate", "advanced"}
    assert low < medium < high


@pytest.mark.parametrize("default, level, expected", [
    (3, "low", 2),
    (2, "low", 2),
    (5, "low", 4),
    (3, "medium", 3),
    (2, "medium", 2),
    (3, "high", 4),
    (2, "high", 3),
])
def test_adjust_sets(default, level, expected):
    assert adjust_sets(default, level) == expected


@pytest.mark.parametrize("default, level, expected", [
    (12, "low", 9),
    (10, "low", 7),
    (8, "low", 6),
    (5, "low", 6),
    (10, "medium", 10),
    (3, "medium", 3),
    (10, "high", 13),
    (12, "high", 15),
    (3, "high", 4),
])
def test_adjust_reps(default, level, expected):
    assert adjust_reps(default, level) == expected


def test_unknown_energy_level_raises():
    with pytest.raises(ValueError):
        adjust_sets(3, "extreme")
    with pytest.raises(ValueError):
        generate_workout(DEFAULT_CATALOG, ["back"], "extreme", 30)


def test_seconds_per_set_is_fixed():
    assert SECONDS_PER_SET == 45


@pytest.mark.parametrize("sets, level, minutes", [
    (3, "low", 6.75),
    (3, "medium", 5.25),
    (4, "high", 5.0),
    (2, "low", 4.5),
])
def test_estimate_exercise_minutes(sets, level, minutes):
    assert estimate_exercise_minutes(sets, level) == pytest.approx(minutes)


def test_estimate_grows_with_sets():
    for level in ENERGY_LEVELS:
        values = [estimate_exercise_minutes(s, level) for s in range(1, 8)]
        assert values == sorted(values)
        assert len(set(values)) == len(values)


def test_scaling_is_monotonic_in_energy():
    for exercise in DEFAULT_CATALOG:
        sets = [adjust_sets(exercise.default_sets, level) for level in ENERGY_LEVELS]
        reps = [adjust_reps(exercise.default_reps, level) for level in ENERGY_LEVELS]
        assert sets == sorted(sets), exercise.name
        assert reps == sorted(reps), exercise.name


def test_prescribe():
    exercise = DEFAULT_CATALOG.get("single-arm-row")
    item = prescribe(exercise, "high")
    assert item == PrescribedExercise(exercise, 4, 15)
    assert item.to_dict()["exercise"]["id"] == "single-arm-row"


@pytest.mark.parametrize("duration", [5, 4, 0, -10])
def test_short_sessions_are_empty(duration):
    assert generate_workout(DEFAULT_CATALOG, ["back", "core"], "high", duration) == []


def test_no_muscle_groups_is_empty():
    assert generate_workout(DEFAULT_CATALOG, [], "high", 45) == []
    assert generate_workout(DEFAULT_CATALOG, set(), "high", 45) == []
    assert generate_workout(DEFAULT_CATALOG, None, "high", 45) == []


def test_unknown_muscle_group_is_empty():
    assert generate_workout(DEFAULT_CATALOG, ["legs"], "medium", 45) == []


@pytest.mark.parametrize("level", ENERGY_LEVELS)
@pytest.mark.parametrize("groups, duration", [
    (["glutes"], 30),
    (["back", "chest"], 60),
    (["core", "mobility", "triceps"], 45),
    (["biceps"], 15),
    (["shoulders", "flexibility"], 20),
])
def test_generated_workouts_hold_invariants(level, groups, duration):
    rng = random.Random(f"{level}-{'-'.join(groups)}-{duration}")
    allowed = allowed_difficulties(level)
    for _ in range(25):
        workout = generate_workout(DEFAULT_CATALOG, groups, level, duration, rng=rng)
        names = [item.exercise.name for item in workout]
        assert len(names) == len(set(names))
        assert estimate_workout_minutes(workout, level) <= duration - RESERVE_MINUTES
        for item in workout:
            assert item.exercise.muscle_group in groups
            assert item.exercise.difficulty in allowed
            assert item.sets == adjust_sets(item.exercise.default_sets, level)
            assert item.reps == adjust_reps(item.exercise.default_reps, level)
            assert item.sets >= 2
            if level == "low":
                assert item.reps >= 6


def test_scenario_glutes_low_thirty_minutes():
    for _ in range(20):
        workout = generate_workout(DEFAULT_CATALOG, {"glutes"}, "low", 30)
        assert workout
        for item in workout:
            assert item.exercise.muscle_group == "glutes"
            assert item.exercise.difficulty == "beginner"
            assert item.sets >= 2
        assert estimate_workout_minutes(workout, "low") <= 25


def test_scenario_no_groups_high_energy():
    assert generate_workout(DEFAULT_CATALOG, {}, "high", 45) == []


def test_scenario_back_and_chest_high_energy():
    for _ in range(20):
        workout = generate_workout(DEFAULT_CATALOG, ["back", "chest"], "high", 60)
        groups = {item.exercise.muscle_group for item in workout}
        assert groups == {"back", "chest"}
        for item in workout:
            assert item.sets == item.exercise.default_sets + 1
            assert item.reps == math.ceil(item.exercise.default_reps * 1.25)


def test_groups_are_deduplicated(make_record):
    catalog = build_catalog([make_record(f"Core {i}", "core") for i in range(3)])
    workout = generate_workout(catalog, ["core", "core"], "medium", 60, rng=NoShuffle())
    assert [item.exercise.name for item in workout] == ["Core 0", "Core 1", "Core 2"]


def test_fill_pass_tops_up_from_groups_with_spare_exercises(make_record):
    # 40 min target split over two groups gives core a share of 5, but back is empty
    catalog = build_catalog([make_record(f"Core {i}", "core") for i in range(10)])
    workout = generate_workout(catalog, ["core", "back"], "medium", 45, rng=NoShuffle())
    # 7 x 5.25 = 36.75, within 3 minutes of the target, and an 8th would overflow
    assert len(workout) == 7
    assert estimate_workout_minutes(workout, "medium") == pytest.approx(36.75)


def test_overflow_stops_the_group_instead_of_skipping(make_record):
    catalog = build_catalog([
        make_record("Long Hold", "core", sets=10),
        make_record("Quick Curl", "core", sets=2),
    ])
    # Long Hold needs 17.5 min against a 15 min target; Quick Curl would fit but is never tried
    assert generate_workout(catalog, ["core"], "medium", 20, rng=NoShuffle()) == []


def test_overflow_in_one_group_moves_on_to_the_next(make_record):
    catalog = build_catalog([
        make_record("Core A", "core", sets=3),
        make_record("Core B", "core", sets=3),
        make_record("Back A", "back", sets=2),
    ])
    # 12 min target, 2 per group: Core A (5.25) + Core B (10.5) fit, Back A (3.5) would not
    workout = generate_workout(catalog, ["core", "back"], "medium", 17, rng=NoShuffle())
    assert [item.exercise.name for item in workout] == ["Core A", "Core B"]


def test_result_is_shuffled_with_the_given_rng(make_record):
    catalog = build_catalog([make_record(f"Core {i}", "core") for i in range(6)])
    first = generate_workout(catalog, ["core"], "medium", 60, rng=random.Random(7))
    second = generate_workout(catalog, ["core"], "medium", 60, rng=random.Random(7))
    assert [i.exercise.name for i in first] == [i.exercise.name for i in second]
