"""Locale-robust number coercion, kg/lb conversion and workout normalization."""
from __future__ import annotations

import math
import re
from typing import Any, Optional

from workout_parse_api.models import (
    NormalizedExercise,
    NormalizedSet,
    NormalizedWorkout,
    ParsedExercise,
    ParsedSet,
    ParsedWorkout,
    WeightUnit,
)

KG_TO_LB = 2.20462

# Characters users type as a decimal point on various keyboards/locales
_DECIMAL_SEPARATORS = {
    ",": ".",  # European decimal comma
    "\u00b7": ".",  # middle dot
    "\u066b": ".",  # Arabic decimal separator
    "\u3001": ".",  # ideographic comma
    "\uff0c": ".",  # fullwidth comma
    "\uff0e": ".",  # fullwidth full stop
}
_DECIMAL_TRANSLATION = str.maketrans(_DECIMAL_SEPARATORS)
_NON_NUMERIC = re.compile(r"[^0-9.\-]")


def coerce_number(value: Any) -> Optional[float]:
    """
    Coerce a number or user-typed string into a finite float.

    "7,5", "7·5" and "7.5" all give 7.5. Returns None for None, empty or
    uncoercible input. "7.5.2" keeps the first dot and folds the rest into
    the fractional digits (7.52).
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        numeric = float(value)
        return numeric if math.isfinite(numeric) else None

    if not isinstance(value, str):
        return None

    cleaned = _NON_NUMERIC.sub("", value.translate(_DECIMAL_TRANSLATION))
    if not cleaned:
        return None

    parts = cleaned.split(".")
    if len(parts) > 2:
        cleaned = parts[0] + "." + "".join(parts[1:])

    try:
        numeric = float(cleaned)
    except ValueError:
        return None
    return numeric if math.isfinite(numeric) else None


def kg_to_lb(value: float) -> float:
    return value * KG_TO_LB


def lb_to_kg(value: float) -> float:
    return value / KG_TO_LB


def normalize_weight_to_kg(weight: Any, source_unit: WeightUnit) -> Optional[float]:
    numeric = coerce_number(weight)
    if numeric is None:
        return None
    if source_unit == "kg":
        return numeric
    converted = lb_to_kg(numeric)
    return converted if math.isfinite(converted) else None


def normalize_reps(value: Any) -> Optional[int]:
    """Reps must be a whole number >= 1; anything else is treated as unknown."""
    numeric = coerce_number(value)
    if numeric is None:
        return None
    reps = int(round(numeric))
    return reps if reps >= 1 else None


def normalize_rpe(value: Any) -> Optional[float]:
    numeric = coerce_number(value)
    if numeric is None:
        return None
    return numeric if numeric >= 0 else None


def has_set_data(weight: Any, reps: Any) -> bool:
    """True when at least one of weight/reps carries something typed by the user."""
    def _present(value: Any) -> bool:
        if isinstance(value, str):
            return bool(value.strip())
        # Zero counts as empty
        return bool(value)

    return _present(weight) or _present(reps)


def normalize_set(parsed: ParsedSet, index: int, weight_unit: WeightUnit) -> NormalizedSet:
    return NormalizedSet(
        set_number=parsed.set_number if parsed.set_number is not None else index + 1,
        reps=normalize_reps(parsed.reps),
        weight=normalize_weight_to_kg(parsed.weight, weight_unit),
        rpe=normalize_rpe(parsed.rpe),
        notes=parsed.notes or None,
        is_warmup=parsed.is_warmup,
    )


def normalize_exercise(parsed: ParsedExercise, weight_unit: WeightUnit) -> NormalizedExercise:
    sets = [normalize_set(s, i, weight_unit) for i, s in enumerate(parsed.sets)]
    # A stored set needs at least one of reps/weight
    sets = [s for s in sets if s.reps is not None or s.weight is not None]
    return NormalizedExercise(
        name=parsed.name.strip(),
        order_index=parsed.order_index,
        notes=parsed.notes or None,
        has_rep_gaps=any(s.reps is None for s in sets),
        sets=sets,
    )


def normalize_workout(workout: ParsedWorkout, weight_unit: WeightUnit) -> NormalizedWorkout:
    """
    Convert a parsed workout into kg / integer-rep form, preserving order_index.

    Exercises left without any set after normalization are dropped.
    """
    exercises = [normalize_exercise(ex, weight_unit) for ex in workout.exercises]
    return NormalizedWorkout(
        notes=workout.notes or None,
        type=workout.type or None,
        exercises=[ex for ex in exercises if ex.sets],
    )
