"""End-to-end parse-workout flow: reconcile, normalize, optionally persist."""
import logging
from typing import Awaitable, Callable, Optional

from workout_parse_api.ai import AIClients
from workout_parse_api.db import Database
from workout_parse_api.errors import ApiError, normalize_error
from workout_parse_api.logging_utils import with_correlation
from workout_parse_api.models import NormalizedWorkout, ParsedWorkout, ParseWorkoutResponse, WorkoutRequest
from workout_parse_api.services.exercise_resolver import ExerciseResolutionAgent
from workout_parse_api.services.exercise_tools import ExerciseTools
from workout_parse_api.services.normalizer import normalize_workout
from workout_parse_api.services.persistence import WorkoutPersistence
from workout_parse_api.services.reconciler import reconcile_sources, summarize_structured_payload
from workout_parse_api.services.workout_parser import WorkoutNotesParser


logger = logging.getLogger(__name__)

SAVE_FAILED_MESSAGE = "Workout parsed but failed to save to database"
NO_EXERCISES_MESSAGE = "No exercises could be detected. Please include specific exercises with sets and reps."

DatabaseProvider = Callable[[], Awaitable[Database]]


def infer_workout_title(title: Optional[str]) -> Optional[str]:
    if not title:
        return None
    return title.strip() or None


def ensure_workout_content(parsed: ParsedWorkout) -> None:
    """Reject results that do not describe any exercise."""
    if not parsed.is_workout_related:
        raise ApiError(
            400,
            "CONTENT_REFUSED",
            "This doesn't appear to be workout-related content. "
            "Please describe your exercises, sets, and reps.",
        )
    if not parsed.exercises:
        raise ApiError(400, "CONTENT_REFUSED", NO_EXERCISES_MESSAGE)


class ParseWorkoutPipeline:
    """Runs one validated request through parsing, normalization and persistence."""

    def __init__(
        self,
        clients: AIClients,
        database: DatabaseProvider,
        parser: Optional[WorkoutNotesParser] = None,
    ):
        self.clients = clients
        self.database = database
        self.parser = parser or WorkoutNotesParser(clients)

    async def parse(self, payload: WorkoutRequest, correlation_id: str) -> NormalizedWorkout:
        """
        Produce the final normalized workout without touching the database.

        Raises:
            ApiError: CONTENT_REFUSED or PARSE_FAILED
        """
        log = with_correlation(logger, correlation_id)
        summary = summarize_structured_payload(payload)
        log.info("Structured payload summary: %s", summary)
        if payload.performed_at is not None:
            log.info(
                "Offline metadata received: performedAt=%s timezoneOffsetMinutes=%s",
                payload.performed_at.isoformat(),
                payload.timezone_offset_minutes,
            )

        parsed = await reconcile_sources(payload, self.parser.parse, correlation_id)
        ensure_workout_content(parsed)

        normalized = normalize_workout(parsed, payload.weight_unit)
        if not normalized.exercises:
            raise ApiError(400, "CONTENT_REFUSED", NO_EXERCISES_MESSAGE)
        title = infer_workout_title(payload.workout_title)
        if title:
            normalized = normalized.model_copy(update={"type": title})

        log.info(
            "Workout finalized: routineId=%s title=%r exercises=%d",
            payload.routine_id,
            normalized.type,
            len(normalized.exercises),
        )
        return normalized

    async def run(self, payload: WorkoutRequest, correlation_id: str) -> ParseWorkoutResponse:
        """
        Parse and, when requested, save the workout.

        Save failures do not raise: the parsed workout is returned with
        `error`, `code` and `details` set.
        """
        log = with_correlation(logger, correlation_id)
        workout = await self.parse(payload, correlation_id)

        if not payload.create_workout or not payload.user_id:
            return ParseWorkoutResponse(workout=workout, correlation_id=correlation_id)

        try:
            db = await self.database()
            tools = ExerciseTools(db.exercises, self.clients, payload.user_id, correlation_id)
            persistence = WorkoutPersistence(db.workouts, ExerciseResolutionAgent(tools, self.clients))
            created = await persistence.create_workout_session(
                payload.user_id, workout, payload, correlation_id
            )
        except Exception as e:
            log.error("Workout creation failed: %s", e, exc_info=True)
            api_error = normalize_error(e)
            code = api_error.code if api_error.code == "PARSE_FAILED" else "DB_FAILED"
            return ParseWorkoutResponse(
                workout=workout,
                error=SAVE_FAILED_MESSAGE,
                code=code,
                details=str(e),
                correlation_id=correlation_id,
            )

        return ParseWorkoutResponse(
            workout=workout,
            created_workout=created.created_workout,
            metrics=created.metrics,
            correlation_id=correlation_id,
        )
