"""
Exercise catalog: immutable exercise definitions and lookups over them.

The catalog is built once from a static list of records (``DEFAULT_EXERCISES``
or a JSON file with the same shape) and only ever read afterwards.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Optional

from .defaults import DEFAULT_EXERCISES

MUSCLE_GROUPS = (
    "back",
    "biceps",
    "chest",
    "triceps",
    "glutes",
    "shoulders",
    "core",
    "flexibility",
    "mobility",
)

MUSCLE_GROUP_LABELS = {
    "back": "Back",
    "biceps": "Biceps",
    "chest": "Chest",
    "triceps": "Triceps",
    "glutes": "Glutes",
    "shoulders": "Shoulders",
    "core": "Core",
    "flexibility": "Flexibility",
    "mobility": "Mobility",
}

DIFFICULTY_TIERS = ("beginner", "intermediate", "advanced")


class CatalogError(ValueError):
    """Raised when the exercise source list is inconsistent."""


def slugify(name: str) -> str:
    """Lowercase, whitespace runs to hyphens, drop anything outside [a-z0-9-]."""
    slug = re.sub(r"\s+", "-", name.lower())
    return re.sub(r"[^a-z0-9-]", "", slug)


@dataclass(frozen=True)
class ExerciseDefinition:
    id: str
    name: str
    muscle_group: str
    difficulty: str
    equipment: str
    description: str
    instructions: tuple
    default_sets: int
    default_reps: int
    secondary_muscles: tuple = field(default_factory=tuple)
    tips: tuple = field(default_factory=tuple)

    @classmethod
    def from_record(cls, record: dict) -> "ExerciseDefinition":
        name = (record.get("name") or "").strip()
        if not name:
            raise CatalogError("exercise record without a name")

        muscle_group = record.get("muscle_group")
        if muscle_group not in MUSCLE_GROUPS:
            raise CatalogError(f"{name}: unknown muscle group {muscle_group!r}")

        secondary = tuple(record.get("secondary_muscles") or ())
        for group in secondary:
            if group not in MUSCLE_GROUPS:
                raise CatalogError(f"{name}: unknown secondary muscle group {group!r}")

        difficulty = record.get("difficulty")
        if difficulty not in DIFFICULTY_TIERS:
            raise CatalogError(f"{name}: unknown difficulty {difficulty!r}")

        instructions = tuple(record.get("instructions") or ())
        if not instructions:
            raise CatalogError(f"{name}: instructions must not be empty")

        try:
            default_sets = int(record["default_sets"])
            default_reps = int(record["default_reps"])
        except (KeyError, TypeError, ValueError):
            raise CatalogError(f"{name}: default_sets and default_reps are required integers")
        if default_sets < 1 or default_reps < 1:
            raise CatalogError(f"{name}: default_sets and default_reps must be positive")

        return cls(
            id=slugify(name),
            name=name,
            muscle_group=muscle_group,
            difficulty=difficulty,
            equipment=record.get("equipment", ""),
            description=record.get("description", ""),
            instructions=instructions,
            default_sets=default_sets,
            default_reps=default_reps,
            secondary_muscles=secondary,
            tips=tuple(record.get("tips") or ()),
        )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "muscle_group": self.muscle_group,
            "secondary_muscles": list(self.secondary_muscles),
            "difficulty": self.difficulty,
            "equipment": self.equipment,
            "description": self.description,
            "instructions": list(self.instructions),
            "tips": list(self.tips),
            "default_sets": self.default_sets,
            "default_reps": self.default_reps,
        }


def _matches(exercise: ExerciseDefinition, text: str) -> bool:
    text = text.lower()
    return text in exercise.name.lower() or text in exercise.description.lower()


class ExerciseCatalog:
    """Read-only, insertion-ordered collection of exercise definitions."""

    def __init__(self, exercises):
        self._exercises = tuple(exercises)
        self._by_id = {}
        names = set()
        for exercise in self._exercises:
            if exercise.id in self._by_id:
                raise CatalogError(
                    f"{exercise.name!r} collides with {self._by_id[exercise.id].name!r} as id {exercise.id!r}"
                )
            if exercise.name in names:
                raise CatalogError(f"duplicate exercise name {exercise.name!r}")
            self._by_id[exercise.id] = exercise
            names.add(exercise.name)

    def __iter__(self):
        return iter(self._exercises)

    def __len__(self):
        return len(self._exercises)

    def __contains__(self, exercise_id):
        return exercise_id in self._by_id

    def get(self, exercise_id: str) -> Optional[ExerciseDefinition]:
        return self._by_id.get(exercise_id)

    def by_muscle_group(self, group: str) -> list:
        return [e for e in self._exercises if e.muscle_group == group]

    def by_difficulty(self, tier: str) -> list:
        return [e for e in self._exercises if e.difficulty == tier]

    def search(self, text: str = "", muscle_group: Optional[str] = None) -> list:
        """Library filter: optional primary group plus name/description text."""
        text = (text or "").strip()
        results = []
        for exercise in self._exercises:
            if muscle_group and exercise.muscle_group != muscle_group:
                continue
            if text and not _matches(exercise, text):
                continue
            results.append(exercise)
        return results

    def alternatives_for(self, exercise: ExerciseDefinition, search: str = "") -> list:
        """Other exercises with the same primary group, for swapping."""
        search = (search or "").strip()
        return [
            e for e in self._exercises
            if e.muscle_group == exercise.muscle_group
            and e.name != exercise.name
            and (not search or _matches(e, search))
        ]

    def related_for(self, exercise: ExerciseDefinition, search: str) -> list:
        """
        Exercises from other groups that hit this exercise's group as a
        secondary muscle. Only offered once the user has typed something.
        """
        search = (search or "").strip()
        if not search:
            return []
        return [
            e for e in self._exercises
            if exercise.muscle_group in e.secondary_muscles
            and e.name != exercise.name
            and e.muscle_group != exercise.muscle_group
            and _matches(e, search)
        ]


def build_catalog(records=None) -> ExerciseCatalog:
    if records is None:
        records = DEFAULT_EXERCISES
    return ExerciseCatalog(ExerciseDefinition.from_record(r) for r in records)


def load_catalog(path: Optional[str] = None) -> ExerciseCatalog:
    """Build the catalog from a JSON file, or the built-in list when no path is given."""
    if not path:
        return DEFAULT_CATALOG
    with open(path, "r") as f:
        records = json.load(f)
    if not isinstance(records, list):
        raise CatalogError(f"{path}: expected a JSON list of exercise records")
    return build_catalog(records)


DEFAULT_CATALOG = build_catalog()
