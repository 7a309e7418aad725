"""Unit tests for request and response models."""
import pytest
from pydantic import ValidationError

from workout_parse_api.models import (
    NormalizedWorkout,
    ParseWorkoutResponse,
    ResolveExercisesRequest,
    WorkoutMetrics,
    WorkoutRequest,
)


class TestWorkoutRequest:
    """Validation of the POST /parse-workout body."""

    def test_defaults(self):
        request = WorkoutRequest.model_validate({"notes": "Squat 5x5"})
        assert request.weight_unit == "kg"
        assert request.create_workout is False
        assert request.structured_data is None

    def test_camel_case_fields(self):
        request = WorkoutRequest.model_validate(
            {
                "notes": "Squat 5x5",
                "weightUnit": "lb",
                "createWorkout": True,
                "userId": "user-1",
                "routineId": "routine-9",
                "durationSeconds": 1800,
            }
        )
        assert request.weight_unit == "lb"
        assert request.user_id == "user-1"
        assert request.routine_id == "routine-9"
        assert request.duration_seconds == 1800

    def test_notes_or_structured_data_required(self):
        with pytest.raises(ValidationError, match="Either notes or structuredData is required"):
            WorkoutRequest.model_validate({"notes": "  ", "structuredData": []})

    def test_user_id_required_to_create(self):
        with pytest.raises(ValidationError, match="User ID is required"):
            WorkoutRequest.model_validate({"notes": "Squat 5x5", "createWorkout": True})

    def test_structured_values_may_be_strings(self):
        request = WorkoutRequest.model_validate(
            {"structuredData": [{"name": "Squat", "sets": [{"weight": "7,5", "reps": 5, "isWarmup": True}]}]}
        )
        first_set = request.structured_data[0].sets[0]
        assert first_set.weight == "7,5"
        assert first_set.is_warmup is True

    def test_notes_length_limit(self):
        with pytest.raises(ValidationError):
            WorkoutRequest.model_validate({"notes": "x" * 10001})

    def test_request_is_immutable(self):
        request = WorkoutRequest.model_validate({"notes": "Squat 5x5"})
        with pytest.raises(ValidationError):
            request.notes = "changed"

    def test_unknown_fields_are_ignored(self):
        request = WorkoutRequest.model_validate({"notes": "Squat 5x5", "source": "ios"})
        assert not hasattr(request, "source")


class TestResolveExercisesRequest:
    def test_requires_names(self):
        with pytest.raises(ValidationError):
            ResolveExercisesRequest.model_validate({"exerciseNames": [], "userId": "u1"})

    def test_rejects_empty_name(self):
        with pytest.raises(ValidationError):
            ResolveExercisesRequest.model_validate({"exerciseNames": [""], "userId": "u1"})


class TestParseWorkoutResponse:
    def test_json_uses_camel_case_and_drops_empty_fields(self):
        response = ParseWorkoutResponse(
            workout=NormalizedWorkout(exercises=[]),
            metrics=WorkoutMetrics(total_exercises=1, matched_exercises=1, created_exercises=0, total_sets=3),
            correlation_id="cid-1",
        )
        body = response.to_json()
        assert body["correlationId"] == "cid-1"
        assert body["_metrics"]["totalSets"] == 3
        assert "error" not in body
        assert "createdWorkout" not in body
