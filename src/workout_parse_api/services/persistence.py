"""
Persist a normalized workout.

Writes happen in dependency order: session row, exercise resolution,
workout-exercise link rows, set rows. A failure after the session row exists
removes that row (links and sets cascade) and re-raises, so the caller can
return the parsed workout with an attached save error.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from workout_parse_api.db import WorkoutRepository
from workout_parse_api.errors import ExerciseResolutionError, PersistenceError
from workout_parse_api.logging_utils import with_correlation
from workout_parse_api.models import (
    ExerciseResolution,
    NormalizedWorkout,
    WorkoutMetrics,
    WorkoutRequest,
)
from workout_parse_api.services.exercise_resolver import ExerciseResolutionAgent
from workout_parse_api.services.reconciler import normalize_exercise_name


logger = logging.getLogger(__name__)


@dataclass
class CreatedWorkout:
    session: Dict[str, Any]
    metrics: WorkoutMetrics
    created_workout: Optional[Dict[str, Any]] = None


def build_session_row(user_id: str, workout: NormalizedWorkout, payload: WorkoutRequest) -> Dict[str, Any]:
    row: Dict[str, Any] = {
        "user_id": user_id,
        "raw_text": payload.notes or None,
        "notes": payload.description,
        "type": workout.type,
        "image_url": payload.image_url,
        "routine_id": payload.routine_id,
        "duration": payload.duration_seconds,
    }
    # Offline submissions carry the time the workout actually happened
    if payload.performed_at is not None:
        row["date"] = payload.performed_at.isoformat()
    return row


def compute_metrics(
    workout: NormalizedWorkout,
    resolutions: Dict[str, ExerciseResolution],
    total_sets: int,
) -> WorkoutMetrics:
    """Matched/created counts are per distinct exercise name."""
    distinct: Dict[str, ExerciseResolution] = {}
    for name, resolution in resolutions.items():
        distinct.setdefault(normalize_exercise_name(name), resolution)
    created = sum(1 for r in distinct.values() if r.was_created)
    return WorkoutMetrics(
        total_exercises=len(workout.exercises),
        matched_exercises=len(distinct) - created,
        created_exercises=created,
        total_sets=total_sets,
    )


class WorkoutPersistence:
    """Saves a workout session with its exercises and sets."""

    def __init__(self, workouts: WorkoutRepository, agent: ExerciseResolutionAgent):
        self.workouts = workouts
        self.agent = agent

    async def create_workout_session(
        self,
        user_id: str,
        workout: NormalizedWorkout,
        payload: WorkoutRequest,
        correlation_id: str,
    ) -> CreatedWorkout:
        """
        Save the workout and re-read it with links, exercises and sets.

        Raises:
            PersistenceError: A database step failed
            AgentIterationLimitError, ExerciseResolutionError: Resolution failed
        """
        log = with_correlation(logger, correlation_id)

        try:
            session = await self.workouts.insert_session(build_session_row(user_id, workout, payload))
        except Exception as e:
            raise PersistenceError(f"Failed to create workout session: {e}") from e

        session_id = session["id"]
        log.info("Processing workout %s with %d exercise(s)", session_id, len(workout.exercises))

        try:
            return await self._save_contents(session, workout, log)
        except Exception:
            await self._discard_session(session_id, log)
            raise

    async def _save_contents(self, session: Dict[str, Any], workout: NormalizedWorkout, log) -> CreatedWorkout:
        session_id = session["id"]
        resolutions = await self.agent.resolve([exercise.name for exercise in workout.exercises])
        log.info("Agent resolved %d exercise name(s)", len(resolutions))

        link_rows: List[Dict[str, Any]] = []
        for exercise in workout.exercises:
            resolution = resolutions.get(exercise.name)
            if resolution is None:
                raise ExerciseResolutionError(f"Agent failed to resolve exercise: {exercise.name}")
            link_rows.append(
                {
                    "session_id": session_id,
                    "exercise_id": resolution.exercise_id,
                    "order_index": exercise.order_index,
                    "notes": exercise.notes,
                }
            )

        try:
            links = await self.workouts.insert_workout_exercises(link_rows)
        except Exception as e:
            raise PersistenceError(f"Failed to save workout exercises: {e}") from e
        if len(links) != len(link_rows):
            raise PersistenceError(
                f"Expected {len(link_rows)} workout exercise rows, got {len(links)}"
            )

        # Inserted rows come back in insertion order
        set_rows: List[Dict[str, Any]] = []
        for exercise, link in zip(workout.exercises, links):
            for s in exercise.sets:
                set_rows.append(
                    {
                        "workout_exercise_id": link["id"],
                        "set_number": s.set_number,
                        "reps": s.reps,
                        "weight": s.weight,
                        "rpe": s.rpe,
                        "notes": s.notes,
                        "is_warmup": s.is_warmup,
                    }
                )

        try:
            await self.workouts.insert_sets(set_rows)
        except Exception as e:
            raise PersistenceError(f"Failed to save sets: {e}") from e

        log.info("Completed workout %s: %d exercises, %d sets", session_id, len(links), len(set_rows))

        try:
            created_workout = await self.workouts.fetch_session(session_id)
        except Exception as e:
            raise PersistenceError(f"Failed to load created workout: {e}") from e

        return CreatedWorkout(
            session=session,
            metrics=compute_metrics(workout, resolutions, len(set_rows)),
            created_workout=created_workout,
        )

    async def _discard_session(self, session_id: str, log) -> None:
        try:
            await self.workouts.delete_session(session_id)
            log.info("Removed incomplete workout session %s", session_id)
        except Exception as e:
            log.error("Failed to remove incomplete workout session %s: %s", session_id, e)
