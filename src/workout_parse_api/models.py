"""Data models for workout parsing, exercise resolution and persistence."""
from datetime import datetime
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


WeightUnit = Literal["kg", "lb"]

MuscleGroup = Literal[
    "Chest",
    "Back",
    "Shoulders",
    "Biceps",
    "Triceps",
    "Core",
    "Glutes",
    "Quads",
    "Hamstrings",
    "Calves",
    "Cardio",
    "Full Body",
]
ExerciseType = Literal["compound", "isolation"]
Equipment = Literal[
    "barbell",
    "dumbbell",
    "bodyweight",
    "cable",
    "machine",
    "kettlebell",
    "resistance band",
    "other",
]

# Values typed by users may arrive as numbers or as strings like "7,5"
RawNumber = Union[int, float, Annotated[str, Field(max_length=32)], None]

MAX_NOTES_LENGTH = 10000
MAX_EXERCISE_NAME_LENGTH = 100
MAX_STRUCTURED_EXERCISES = 50
MAX_SETS_PER_EXERCISE = 50


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# ---------------------------------------------------------------------------
# Request contract
# ---------------------------------------------------------------------------


class StructuredSetInput(_CamelModel):
    """One set row as typed into the structured logging UI."""
    weight: RawNumber = None
    reps: RawNumber = None
    rpe: RawNumber = None
    is_warmup: bool = Field(default=False, alias="isWarmup")


class StructuredExerciseInput(_CamelModel):
    name: str = Field(default="", max_length=MAX_EXERCISE_NAME_LENGTH)
    sets: List[StructuredSetInput] = Field(default_factory=list, max_length=MAX_SETS_PER_EXERCISE)


class WorkoutRequest(_CamelModel):
    """Incoming POST /parse-workout body. Immutable once validated."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    notes: str = Field(default="", max_length=MAX_NOTES_LENGTH)
    weight_unit: WeightUnit = Field(default="kg", alias="weightUnit")
    create_workout: bool = Field(default=False, alias="createWorkout")
    user_id: Optional[str] = Field(default=None, alias="userId", max_length=128)
    workout_title: Optional[str] = Field(default=None, alias="workoutTitle", max_length=200)
    description: Optional[str] = Field(default=None, max_length=5000)
    image_url: Optional[str] = Field(default=None, alias="imageUrl", max_length=2048)
    routine_id: Optional[str] = Field(default=None, alias="routineId", max_length=128)
    duration_seconds: Optional[int] = Field(default=None, alias="durationSeconds", ge=0, le=86400)
    performed_at: Optional[datetime] = Field(default=None, alias="performedAt")
    timezone_offset_minutes: Optional[int] = Field(default=None, alias="timezoneOffsetMinutes", ge=-840, le=840)
    is_structured_mode: Optional[bool] = Field(default=None, alias="isStructuredMode")
    structured_data: Optional[List[StructuredExerciseInput]] = Field(
        default=None, alias="structuredData", max_length=MAX_STRUCTURED_EXERCISES
    )

    @model_validator(mode="after")
    def _check_required_inputs(self) -> "WorkoutRequest":
        if not self.notes.strip() and not self.structured_data:
            raise ValueError("Either notes or structuredData is required")
        if self.create_workout and not self.user_id:
            raise ValueError("User ID is required for workout creation")
        return self

    @property
    def has_notes(self) -> bool:
        return bool(self.notes.strip())


# ---------------------------------------------------------------------------
# Parsed workout (structured input and/or model output)
# ---------------------------------------------------------------------------


class ParsedSet(_CamelModel):
    set_number: Optional[int] = None
    reps: RawNumber = None
    weight: RawNumber = None
    rpe: RawNumber = None
    notes: Optional[str] = None
    is_warmup: bool = False


class ParsedExercise(_CamelModel):
    name: str
    order_index: int
    notes: Optional[str] = None
    sets: List[ParsedSet] = Field(default_factory=list)


class ParsedWorkout(_CamelModel):
    is_workout_related: bool = Field(alias="isWorkoutRelated")
    notes: Optional[str] = None
    type: Optional[str] = None
    exercises: List[ParsedExercise] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Normalized workout (weights in kg, integer reps)
# ---------------------------------------------------------------------------


class NormalizedSet(_CamelModel):
    set_number: int
    reps: Optional[int] = None
    weight: Optional[float] = None
    rpe: Optional[float] = None
    notes: Optional[str] = None
    is_warmup: bool = False


class NormalizedExercise(_CamelModel):
    name: str
    order_index: int
    notes: Optional[str] = None
    has_rep_gaps: bool = Field(default=False, alias="hasRepGaps")
    sets: List[NormalizedSet] = Field(default_factory=list)


class NormalizedWorkout(_CamelModel):
    notes: Optional[str] = None
    type: Optional[str] = None
    exercises: List[NormalizedExercise] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Exercise resolution
# ---------------------------------------------------------------------------


class ExerciseResolution(_CamelModel):
    exercise_id: str = Field(alias="exerciseId")
    exercise_name: str = Field(alias="exerciseName")
    was_created: bool = Field(alias="wasCreated")


class WorkoutMetrics(_CamelModel):
    total_exercises: int = Field(alias="totalExercises")
    matched_exercises: int = Field(alias="matchedExercises")
    created_exercises: int = Field(alias="createdExercises")
    total_sets: int = Field(alias="totalSets")


class ExerciseCandidate(BaseModel):
    id: str
    name: str
    similarity: float = 0.0
    aliases: List[str] = Field(default_factory=list)
    muscle_group: Optional[str] = None
    type: Optional[str] = None
    equipment: Optional[str] = None
    created_by: Optional[str] = None


class SearchExercisesInput(BaseModel):
    query: str = Field(..., min_length=1, max_length=200)
    limit: int = Field(default=10, ge=1, le=25)


class SearchExercisesOutput(BaseModel):
    candidates: List[ExerciseCandidate] = Field(default_factory=list)


class CreateExerciseInput(BaseModel):
    name: str = Field(..., min_length=1)
    muscle_group: Optional[MuscleGroup] = None
    type: Optional[ExerciseType] = None
    equipment: Optional[Equipment] = None


class CreateExerciseOutput(BaseModel):
    id: str
    name: str
    was_created: bool = True


class ExerciseMetadata(BaseModel):
    muscle_group: MuscleGroup
    type: ExerciseType
    equipment: Equipment


DEFAULT_EXERCISE_METADATA = ExerciseMetadata(
    muscle_group="Full Body",
    type="compound",
    equipment="other",
)


class SubmittedResolution(BaseModel):
    name: str = Field(..., min_length=1)
    exercise_id: str = Field(..., min_length=1)
    status: Literal["matched", "created"]


class SubmitResolutionsInput(BaseModel):
    resolutions: List[SubmittedResolution] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Endpoint contracts
# ---------------------------------------------------------------------------


class ResolveExercisesRequest(_CamelModel):
    exercise_names: List[Annotated[str, Field(min_length=1, max_length=MAX_EXERCISE_NAME_LENGTH)]] = Field(
        ..., alias="exerciseNames", min_length=1, max_length=MAX_STRUCTURED_EXERCISES
    )
    user_id: str = Field(..., alias="userId", min_length=1, max_length=128)


class ExerciseMetadataRequest(_CamelModel):
    exercise_name: str = Field(..., alias="exerciseName", min_length=1, max_length=MAX_EXERCISE_NAME_LENGTH)


class ParseWorkoutResponse(_CamelModel):
    workout: NormalizedWorkout
    created_workout: Optional[dict[str, Any]] = Field(default=None, alias="createdWorkout")
    metrics: Optional[WorkoutMetrics] = Field(default=None, alias="_metrics")
    # Partial success: parsed but not saved
    error: Optional[str] = None
    code: Optional[str] = None
    details: Optional[Any] = None
    correlation_id: str = Field(alias="correlationId")

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
