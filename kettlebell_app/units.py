KG_PER_LB = 2.20462

UNIT_OPTIONS = ("kg", "lbs")

# Common kettlebell sizes
KETTLEBELL_WEIGHTS_KG = [4, 8, 12, 16, 20, 24, 28, 32, 36, 40, 44, 48]


def _round_half_up(value: float) -> int:
    return int(value + 0.5) if value >= 0 else -int(-value + 0.5)


def kg_to_lbs(kg: float) -> int:
    return _round_half_up(kg * KG_PER_LB)


def format_weight(weight_kg: float, unit: str) -> str:
    if unit == "lbs":
        return f"{kg_to_lbs(weight_kg)} lbs"
    if float(weight_kg).is_integer():
        weight_kg = int(weight_kg)
    return f"{weight_kg} kg"


def format_duration(minutes: int) -> str:
    if minutes < 60:
        return f"{minutes} min"
    hours = minutes // 60
    mins = minutes % 60
    return f"{hours}h {mins}m" if mins > 0 else f"{hours}h"
