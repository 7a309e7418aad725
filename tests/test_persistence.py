"""Tests for saving sessions, workout-exercise links and sets."""
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from workout_parse_api.errors import ExerciseResolutionError, PersistenceError
from workout_parse_api.models import (
    ExerciseResolution,
    NormalizedExercise,
    NormalizedSet,
    NormalizedWorkout,
    WorkoutRequest,
)
from workout_parse_api.services.persistence import (
    WorkoutPersistence,
    build_session_row,
    compute_metrics,
)

from fakes import TEST_USER_ID


BENCH_ID = "11111111-1111-4111-8111-111111111111"
SQUAT_ID = "22222222-2222-4222-8222-222222222222"


def _workout() -> NormalizedWorkout:
    return NormalizedWorkout(
        type="Push Day",
        exercises=[
            NormalizedExercise(
                name="Bench Press",
                order_index=0,
                sets=[
                    NormalizedSet(set_number=1, reps=8, weight=61.2),
                    NormalizedSet(set_number=2, reps=6, weight=70.3),
                ],
            ),
            NormalizedExercise(
                name="Squats",
                order_index=1,
                notes="felt heavy",
                sets=[NormalizedSet(set_number=i, reps=10, is_warmup=i == 1) for i in (1, 2, 3)],
            ),
        ],
    )


def _payload(**kwargs) -> WorkoutRequest:
    body = {"notes": "Bench press 135x8, 155x6", "createWorkout": True, "userId": TEST_USER_ID}
    body.update(kwargs)
    return WorkoutRequest.model_validate(body)


def _agent(resolutions=None, side_effect=None):
    agent = MagicMock()
    agent.resolve = AsyncMock(
        return_value=resolutions
        or {
            "Bench Press": ExerciseResolution(exercise_id=BENCH_ID, exercise_name="Bench Press", was_created=False),
            "Squats": ExerciseResolution(exercise_id=SQUAT_ID, exercise_name="Squat", was_created=True),
        },
        side_effect=side_effect,
    )
    return agent


class TestSessionRow:
    def test_basic_fields(self):
        row = build_session_row(TEST_USER_ID, _workout(), _payload(description="Morning lift", durationSeconds=3600))
        assert row["user_id"] == TEST_USER_ID
        assert row["raw_text"] == "Bench press 135x8, 155x6"
        assert row["notes"] == "Morning lift"
        assert row["type"] == "Push Day"
        assert row["duration"] == 3600
        assert "date" not in row

    def test_performed_at_sets_date(self):
        performed_at = datetime(2024, 3, 1, 7, 30, tzinfo=timezone.utc)
        row = build_session_row(TEST_USER_ID, _workout(), _payload(performedAt=performed_at.isoformat()))
        assert row["date"] == performed_at.isoformat()

    def test_structured_only_has_no_raw_text(self):
        payload = _payload(notes="", structuredData=[{"name": "Squat", "sets": [{"weight": 100, "reps": 5}]}])
        assert build_session_row(TEST_USER_ID, _workout(), payload)["raw_text"] is None


class TestMetrics:
    def test_counts_distinct_names(self):
        resolutions = {
            "Bench Press": ExerciseResolution(exercise_id=BENCH_ID, exercise_name="Bench Press", was_created=False),
            "bench press": ExerciseResolution(exercise_id=BENCH_ID, exercise_name="Bench Press", was_created=False),
            "Hip Thrust": ExerciseResolution(exercise_id="new", exercise_name="Hip Thrust", was_created=True),
        }
        metrics = compute_metrics(_workout(), resolutions, total_sets=5)
        assert metrics.total_exercises == 2
        assert metrics.matched_exercises == 1
        assert metrics.created_exercises == 1
        assert metrics.total_sets == 5


class TestCreateWorkoutSession:
    @pytest.mark.asyncio
    async def test_rows_written_in_order(self, workout_repo):
        persistence = WorkoutPersistence(workout_repo, _agent())

        created = await persistence.create_workout_session(TEST_USER_ID, _workout(), _payload(), "cid")

        session_id = created.session["id"]
        assert [(l["exercise_id"], l["order_index"]) for l in workout_repo.links] == [(BENCH_ID, 0), (SQUAT_ID, 1)]
        assert all(l["session_id"] == session_id for l in workout_repo.links)
        assert workout_repo.links[1]["notes"] == "felt heavy"

        bench_link, squat_link = workout_repo.links
        bench_sets = [s for s in workout_repo.sets if s["workout_exercise_id"] == bench_link["id"]]
        squat_sets = [s for s in workout_repo.sets if s["workout_exercise_id"] == squat_link["id"]]
        assert [(s["set_number"], s["reps"], s["weight"]) for s in bench_sets] == [(1, 8, 61.2), (2, 6, 70.3)]
        assert [s["is_warmup"] for s in squat_sets] == [True, False, False]

        assert created.metrics.total_sets == 5
        assert created.metrics.created_exercises == 1
        assert created.created_workout["id"] == session_id
        assert len(created.created_workout["workout_exercises"]) == 2

    @pytest.mark.asyncio
    async def test_session_insert_failure(self, workout_repo):
        workout_repo.fail_on.add("insert_session")
        agent = _agent()
        persistence = WorkoutPersistence(workout_repo, agent)

        with pytest.raises(PersistenceError, match="workout session"):
            await persistence.create_workout_session(TEST_USER_ID, _workout(), _payload(), "cid")

        agent.resolve.assert_not_awaited()
        assert workout_repo.deleted == []

    @pytest.mark.asyncio
    async def test_set_failure_removes_session(self, workout_repo):
        workout_repo.fail_on.add("insert_sets")
        persistence = WorkoutPersistence(workout_repo, _agent())

        with pytest.raises(PersistenceError, match="sets"):
            await persistence.create_workout_session(TEST_USER_ID, _workout(), _payload(), "cid")

        assert len(workout_repo.deleted) == 1
        assert workout_repo.sessions == {}
        assert workout_repo.links == []

    @pytest.mark.asyncio
    async def test_resolution_failure_removes_session(self, workout_repo):
        agent = _agent(side_effect=ExerciseResolutionError("Agent failed to resolve exercise: Squats"))
        persistence = WorkoutPersistence(workout_repo, agent)

        with pytest.raises(ExerciseResolutionError):
            await persistence.create_workout_session(TEST_USER_ID, _workout(), _payload(), "cid")

        assert len(workout_repo.deleted) == 1
        assert workout_repo.links == []

    @pytest.mark.asyncio
    async def test_missing_resolution_is_an_error(self, workout_repo):
        agent = _agent(
            {"Bench Press": ExerciseResolution(exercise_id=BENCH_ID, exercise_name="Bench Press", was_created=False)}
        )
        persistence = WorkoutPersistence(workout_repo, agent)

        with pytest.raises(ExerciseResolutionError, match="Squats"):
            await persistence.create_workout_session(TEST_USER_ID, _workout(), _payload(), "cid")
        assert workout_repo.links == []

    @pytest.mark.asyncio
    async def test_short_link_insert_is_an_error(self, workout_repo):
        workout_repo.insert_workout_exercises = AsyncMock(return_value=[{"id": "only-one"}])
        persistence = WorkoutPersistence(workout_repo, _agent())

        with pytest.raises(PersistenceError, match="Expected 2"):
            await persistence.create_workout_session(TEST_USER_ID, _workout(), _payload(), "cid")
        assert len(workout_repo.deleted) == 1

    @pytest.mark.asyncio
    async def test_cleanup_failure_keeps_original_error(self, workout_repo):
        workout_repo.fail_on.update({"insert_workout_exercises", "delete_session"})
        persistence = WorkoutPersistence(workout_repo, _agent())

        with pytest.raises(PersistenceError, match="workout exercises"):
            await persistence.create_workout_session(TEST_USER_ID, _workout(), _payload(), "cid")
