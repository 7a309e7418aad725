"""
Workout parsing endpoints.

POST /parse-workout       notes and/or structured sets -> normalized workout,
                          optionally saved with resolved exercises
POST /resolve-exercises   raw exercise names -> canonical exercise ids
POST /exercise-metadata   exercise name -> muscle group / type / equipment

Every response carries the request's correlation id; errors use the
`{error, code, details?, correlationId}` body.
"""
import logging
from typing import Optional, Type, TypeVar

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from workout_parse_api.ai import AIClients
from workout_parse_api.auth import ensure_can_act_as, get_current_user, get_optional_user
from workout_parse_api.db import get_database
from workout_parse_api.errors import ApiError, normalize_error, to_error_response
from workout_parse_api.logging_utils import create_correlation_id, with_correlation
from workout_parse_api.models import ExerciseMetadataRequest, ResolveExercisesRequest, WorkoutRequest
from workout_parse_api.services.exercise_resolver import ExerciseResolutionAgent
from workout_parse_api.services.exercise_tools import ExerciseTools, generate_exercise_metadata
from workout_parse_api.services.pipeline import DatabaseProvider, ParseWorkoutPipeline


logger = logging.getLogger(__name__)

router = APIRouter()

ModelT = TypeVar("ModelT", bound=BaseModel)

_ai_clients: Optional[AIClients] = None


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def get_ai_clients() -> AIClients:
    """Process-wide model clients, created on first use."""
    global _ai_clients
    if _ai_clients is None:
        _ai_clients = AIClients()
    return _ai_clients


def get_database_provider() -> DatabaseProvider:
    return get_database


def get_pipeline(
    clients: AIClients = Depends(get_ai_clients),
    database: DatabaseProvider = Depends(get_database_provider),
) -> ParseWorkoutPipeline:
    return ParseWorkoutPipeline(clients, database)


async def read_body(request: Request, model: Type[ModelT]) -> ModelT:
    """
    Decode and validate a JSON body.

    Raises:
        json.JSONDecodeError, pydantic.ValidationError, ApiError
    """
    raw = await request.json()
    if not isinstance(raw, dict):
        raise ApiError(400, "ZOD_INVALID", "Invalid request", "Request body must be a JSON object")
    return model.model_validate(raw)


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.post("/parse-workout")
async def parse_workout(
    request: Request,
    caller_id: Optional[str] = Depends(get_optional_user),
    pipeline: ParseWorkoutPipeline = Depends(get_pipeline),
):
    """Parse workout notes and/or structured sets; save when createWorkout is set."""
    correlation_id = create_correlation_id()
    log = with_correlation(logger, correlation_id)
    log.info("Request received: %s %s", request.method, request.url.path)

    try:
        payload = await read_body(request, WorkoutRequest)
        log.info(
            "Schema validated, userId: %s, createWorkout: %s",
            payload.user_id,
            payload.create_workout,
        )
        if payload.create_workout:
            ensure_can_act_as(caller_id, payload.user_id)

        response = await pipeline.run(payload, correlation_id)
    except Exception as e:
        api_error = normalize_error(e)
        log.error(
            "Request failed (%s): %s",
            api_error.code,
            e,
            exc_info=not isinstance(e, ApiError) and api_error.code == "UNKNOWN",
        )
        return to_error_response(api_error, correlation_id)

    return JSONResponse(response.to_json())


@router.post("/resolve-exercises")
async def resolve_exercises(
    request: Request,
    caller_id: str = Depends(get_current_user),
    clients: AIClients = Depends(get_ai_clients),
    database: DatabaseProvider = Depends(get_database_provider),
):
    """Resolve raw exercise names to canonical exercise ids for a user."""
    correlation_id = create_correlation_id()
    log = with_correlation(logger, correlation_id)

    try:
        body = await read_body(request, ResolveExercisesRequest)
        ensure_can_act_as(caller_id, body.user_id)

        db = await database()
        tools = ExerciseTools(db.exercises, clients, body.user_id, correlation_id)
        resolutions = await ExerciseResolutionAgent(tools, clients).resolve(body.exercise_names)
    except Exception as e:
        api_error = normalize_error(e)
        log.error("Exercise resolution failed (%s): %s", api_error.code, e)
        return to_error_response(api_error, correlation_id)

    return JSONResponse(
        {
            "resolutions": {
                name: resolution.model_dump(by_alias=True) for name, resolution in resolutions.items()
            },
            "correlationId": correlation_id,
        }
    )


@router.post("/exercise-metadata")
async def exercise_metadata(
    request: Request,
    caller_id: str = Depends(get_current_user),
    clients: AIClients = Depends(get_ai_clients),
):
    """Infer muscle group, type and equipment; defaults when the model fails."""
    correlation_id = create_correlation_id()
    try:
        body = await read_body(request, ExerciseMetadataRequest)
    except Exception as e:
        return to_error_response(normalize_error(e), correlation_id)

    metadata = await generate_exercise_metadata(
        clients,
        body.exercise_name.strip(),
        correlation_id,
        user_id=caller_id,
    )
    return JSONResponse(metadata.model_dump())
