"""
Reconcile structured set entries with free-text notes.

Structured input is authoritative. Notes are parsed by the model and only
contribute exercises the structured input does not already contain; those
are appended after the structured exercises with contiguous order_index.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from workout_parse_api.logging_utils import with_correlation
from workout_parse_api.models import (
    ParsedExercise,
    ParsedSet,
    ParsedWorkout,
    WorkoutRequest,
)
from workout_parse_api.services.normalizer import has_set_data


logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")

NotesParser = Callable[[WorkoutRequest, str], Awaitable[ParsedWorkout]]


def normalize_exercise_name(name: str) -> str:
    """Comparison key for exercise names: lowercase, trimmed, single spaces."""
    return _WHITESPACE.sub(" ", (name or "").strip().lower())


def distinct_exercise_names(names: list[str]) -> list[str]:
    """First spelling of each case/whitespace-distinct name, in input order."""
    seen: set[str] = set()
    out: list[str] = []
    for name in names:
        key = normalize_exercise_name(name)
        if not key or key in seen:
            continue
        seen.add(key)
        out.append(_WHITESPACE.sub(" ", name.strip()))
    return out


@dataclass
class StructuredSummary:
    is_structured_mode: bool
    has_structured_payload: bool
    structured_exercises_count: int
    structured_sets_count: int
    structured_sets_with_data_count: int


def summarize_structured_payload(payload: WorkoutRequest) -> StructuredSummary:
    exercises = payload.structured_data or []
    sets_count = 0
    with_data = 0
    for exercise in exercises:
        for s in exercise.sets:
            sets_count += 1
            if has_set_data(s.weight, s.reps):
                with_data += 1
    return StructuredSummary(
        is_structured_mode=bool(payload.is_structured_mode),
        has_structured_payload=len(exercises) > 0,
        structured_exercises_count=len(exercises),
        structured_sets_count=sets_count,
        structured_sets_with_data_count=with_data,
    )


def build_structured_parsed_workout(payload: WorkoutRequest) -> Optional[ParsedWorkout]:
    """
    Build a ParsedWorkout straight from structured input.

    Sets where both weight and reps are empty are dropped, and so is any
    exercise left without sets. Returns None when nothing usable remains.
    order_index follows the input order and stays contiguous.
    """
    exercises_input = payload.structured_data or []
    if not exercises_input:
        return None

    exercises: list[ParsedExercise] = []
    for exercise in exercises_input:
        name = exercise.name.strip()
        if not name:
            continue

        usable = [s for s in exercise.sets if has_set_data(s.weight, s.reps)]
        if not usable:
            continue

        sets = [
            ParsedSet(
                set_number=set_index + 1,
                reps=s.reps,
                weight=s.weight,
                rpe=s.rpe,
                notes=None,
                is_warmup=s.is_warmup,
            )
            for set_index, s in enumerate(usable)
        ]
        exercises.append(ParsedExercise(name=name, order_index=len(exercises), notes=None, sets=sets))

    if not exercises:
        return None

    return ParsedWorkout(is_workout_related=True, notes=None, type=None, exercises=exercises)


def merge_workouts(
    structured: ParsedWorkout,
    notes_parsed: Optional[ParsedWorkout],
    correlation_id: str,
) -> ParsedWorkout:
    """Append notes-only exercises after the structured ones."""
    log = with_correlation(logger, correlation_id)

    if notes_parsed is None or not notes_parsed.exercises:
        return structured

    structured_names = {normalize_exercise_name(ex.name) for ex in structured.exercises}
    additional: list[ParsedExercise] = []
    for ex in notes_parsed.exercises:
        key = normalize_exercise_name(ex.name)
        if not key or key in structured_names:
            continue
        # Notes can repeat a name; keep its first occurrence only
        structured_names.add(key)
        additional.append(ex)

    if additional:
        log.info(
            "Adding %d unique exercise(s) from notes: %s",
            len(additional),
            ", ".join(ex.name for ex in additional),
        )
    else:
        log.info(
            "No additional unique exercises from notes (all %d were duplicates of structured)",
            len(notes_parsed.exercises),
        )

    base = len(structured.exercises)
    reindexed = [
        ex.model_copy(update={"order_index": base + idx})
        for idx, ex in enumerate(additional)
    ]

    return ParsedWorkout(
        is_workout_related=True,
        notes=notes_parsed.notes or structured.notes,
        type=notes_parsed.type or structured.type,
        exercises=list(structured.exercises) + reindexed,
    )


async def reconcile_sources(
    payload: WorkoutRequest,
    parse_notes: NotesParser,
    correlation_id: str,
) -> ParsedWorkout:
    """
    Decide which inputs to use and produce one ParsedWorkout.

    - structured + notes: parse notes and merge; a failed notes parse is
      logged and the structured workout is used alone
    - structured only: use it as is
    - notes only, or structured with no usable sets: parse notes
    """
    log = with_correlation(logger, correlation_id)
    structured = build_structured_parsed_workout(payload)

    if structured is not None and payload.has_notes:
        log.info(
            "Both structured (%d exercises) and notes present, merging...",
            len(structured.exercises),
        )
        notes_parsed: Optional[ParsedWorkout] = None
        try:
            notes_parsed = await parse_notes(payload, correlation_id)
            log.info("AI parsed %d exercises from notes", len(notes_parsed.exercises))
        except Exception as e:
            log.warning("AI parsing failed, using structured only: %s", e)
        merged = merge_workouts(structured, notes_parsed, correlation_id)
        log.info("Merged result: %d exercises", len(merged.exercises))
        return merged

    if structured is not None:
        log.info("Using structured payload only, exercises: %d", len(structured.exercises))
        return structured

    if payload.structured_data:
        log.info("Structured payload present but no usable sets; falling back to AI")

    if not payload.has_notes:
        return ParsedWorkout(is_workout_related=True, exercises=[])

    log.info("Calling AI parser...")
    parsed = await parse_notes(payload, correlation_id)
    log.info("AI parsing complete, exercises: %d", len(parsed.exercises))
    return parsed
