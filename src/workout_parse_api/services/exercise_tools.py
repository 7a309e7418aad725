"""
Exercise tools exposed to the resolution agent.

searchExercises and createExercise operate on the canonical exercise table;
submitResolutions is the agent's structured way of reporting its final
answer and is handled by the resolver itself.
"""
import json
import logging
import re
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from workout_parse_api.ai import AIClients, AIRequestContext, provider_for_model
from workout_parse_api.config import settings
from workout_parse_api.db import ExerciseRepository, is_unique_violation
from workout_parse_api.logging_utils import with_correlation
from workout_parse_api.models import (
    DEFAULT_EXERCISE_METADATA,
    MAX_EXERCISE_NAME_LENGTH,
    CreateExerciseInput,
    CreateExerciseOutput,
    ExerciseCandidate,
    ExerciseMetadata,
    SearchExercisesInput,
    SearchExercisesOutput,
)


logger = logging.getLogger(__name__)

MUSCLE_GROUPS = [
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
EXERCISE_TYPES = ["compound", "isolation"]
EQUIPMENT = [
    "barbell",
    "dumbbell",
    "bodyweight",
    "cable",
    "machine",
    "kettlebell",
    "resistance band",
    "other",
]

_UNSAFE_NAME = re.compile(r"<script|javascript:|on\w+=", re.IGNORECASE)

SEARCH_EXERCISES_TOOL = {
    "type": "function",
    "function": {
        "name": "searchExercises",
        "description": (
            "Search for exercises in the database by name. Returns a list of candidate "
            "exercises with similarity scores, aliases, and metadata. Use this to find "
            "existing exercises before creating new ones."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": 'The exercise name to search for (e.g., "bench press", "squat")',
                },
                "limit": {
                    "type": "integer",
                    "description": "Maximum number of results to return (1-25, default 10)",
                },
            },
            "required": ["query"],
        },
    },
}

CREATE_EXERCISE_TOOL = {
    "type": "function",
    "function": {
        "name": "createExercise",
        "description": (
            "Create a new exercise in the database. Only use this when searchExercises "
            "returns no good matches. Provide the exercise name and optionally its "
            "metadata (muscle_group, type, equipment)."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "name": {
                    "type": "string",
                    "description": 'The exercise name (e.g., "Barbell Bench Press")',
                },
                "muscle_group": {
                    "type": "string",
                    "enum": MUSCLE_GROUPS,
                    "description": "Primary muscle group targeted",
                },
                "type": {
                    "type": "string",
                    "enum": EXERCISE_TYPES,
                    "description": "Exercise type (compound = multi-joint, isolation = single muscle)",
                },
                "equipment": {
                    "type": "string",
                    "enum": EQUIPMENT,
                    "description": "Equipment used for the exercise",
                },
            },
            "required": ["name"],
        },
    },
}

SUBMIT_RESOLUTIONS_TOOL = {
    "type": "function",
    "function": {
        "name": "submitResolutions",
        "description": (
            "Submit the final resolution for every exercise in the list. Call this once, "
            "after all exercises have been matched or created."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "resolutions": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "name": {
                                "type": "string",
                                "description": "The original exercise name exactly as listed",
                            },
                            "exercise_id": {
                                "type": "string",
                                "description": "ID of the matched or created exercise",
                            },
                            "status": {"type": "string", "enum": ["matched", "created"]},
                        },
                        "required": ["name", "exercise_id", "status"],
                    },
                },
            },
            "required": ["resolutions"],
        },
    },
}

METADATA_JSON_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "required": ["muscle_group", "type", "equipment"],
    "properties": {
        "muscle_group": {"type": "string", "enum": MUSCLE_GROUPS},
        "type": {"type": "string", "enum": EXERCISE_TYPES},
        "equipment": {"type": "string", "enum": EQUIPMENT},
    },
}

_METADATA_SYSTEM_PROMPT = "You are a fitness expert returning strict JSON metadata for exercises."


def title_case_exercise_name(name: str) -> str:
    """
    Title-case an exercise name, including each part of a hyphenated word.

    Examples: "leg press" -> "Leg Press", "PUSH-UPS" -> "Push-Ups"
    """
    words = []
    for word in name.strip().split():
        words.append("-".join(part[:1].upper() + part[1:].lower() for part in word.split("-")))
    return " ".join(words)


def build_metadata_prompt(exercise_name: str) -> str:
    return f"""Analyze the exercise name and determine its metadata.

Exercise name: "{exercise_name}"

Determine:
1. Primary muscle group ({"|".join(MUSCLE_GROUPS)})
2. Type (compound or isolation)
   - Compound: works multiple muscle groups/joints (e.g., Bench Press, Squat, Pull-ups)
   - Isolation: targets single muscle group (e.g., Bicep Curl, Leg Extension, Lateral Raise)
3. Equipment ({"|".join(EQUIPMENT)})

Examples:
- "Bench Press" -> muscle_group: Chest, type: compound, equipment: barbell
- "Dumbbell Curl" -> muscle_group: Biceps, type: isolation, equipment: dumbbell
- "Push-ups" -> muscle_group: Chest, type: compound, equipment: bodyweight
- "Lat Pulldown" -> muscle_group: Back, type: compound, equipment: cable
- "Leg Extension" -> muscle_group: Quads, type: isolation, equipment: machine

Return the metadata as JSON."""


async def generate_exercise_metadata(
    clients: AIClients,
    exercise_name: str,
    correlation_id: Optional[str] = None,
    user_id: Optional[str] = None,
    model: Optional[str] = None,
) -> ExerciseMetadata:
    """
    Infer muscle group, type and equipment for an exercise name.

    Never raises: any model or validation failure yields the defaults
    (Full Body / compound / other).
    """
    model = model or settings.METADATA_MODEL
    log = with_correlation(logger, correlation_id)
    context = AIRequestContext(
        user_id=user_id,
        feature_name="exercise_metadata",
        request_id=correlation_id,
    )
    prompt = build_metadata_prompt(exercise_name)

    try:
        if provider_for_model(model) == "anthropic":
            response = await clients.anthropic.messages.create(
                model=model,
                max_tokens=256,
                system=_METADATA_SYSTEM_PROMPT,
                messages=[{"role": "user", "content": prompt}],
                tools=[
                    {
                        "name": "record_metadata",
                        "description": "Record the exercise metadata.",
                        "input_schema": METADATA_JSON_SCHEMA,
                    }
                ],
                tool_choice={"type": "tool", "name": "record_metadata"},
                extra_headers=context.request_headers() or None,
            )
            payload = next(
                (block.input for block in response.content if getattr(block, "type", None) == "tool_use"),
                None,
            )
            if payload is None:
                raise ValueError("No structured output from Anthropic")
            metadata = ExerciseMetadata.model_validate(payload)
        else:
            response = await clients.openai.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": _METADATA_SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                response_format={
                    "type": "json_schema",
                    "json_schema": {
                        "name": "exercise_metadata",
                        "strict": True,
                        "schema": METADATA_JSON_SCHEMA,
                    },
                },
                extra_headers=context.request_headers() or None,
            )
            content = response.choices[0].message.content if response.choices else None
            if not content:
                raise ValueError("Empty response from OpenAI")
            metadata = ExerciseMetadata.model_validate_json(content)
    except Exception as e:
        log.warning("Metadata generation failed for %r, using defaults: %s", exercise_name, e)
        return DEFAULT_EXERCISE_METADATA

    log.info(
        "Generated metadata for %r: %s/%s/%s",
        exercise_name,
        metadata.muscle_group,
        metadata.type,
        metadata.equipment,
    )
    return metadata


class ExerciseTools:
    """Tool handlers bound to one requesting user and correlation id."""

    def __init__(
        self,
        repository: ExerciseRepository,
        clients: AIClients,
        user_id: str,
        correlation_id: Optional[str] = None,
    ):
        self.repository = repository
        self.clients = clients
        self.user_id = user_id
        self.correlation_id = correlation_id
        self.log = with_correlation(logger, correlation_id)

    def _visible(self, row: Dict[str, Any]) -> bool:
        created_by = row.get("created_by")
        return not isinstance(created_by, str) or created_by == self.user_id

    async def search_exercises(
        self,
        args: SearchExercisesInput,
        similarity_threshold: Optional[float] = None,
    ) -> SearchExercisesOutput:
        """
        Trigram search over names and aliases.

        Rows are deduplicated by id keeping the highest similarity, filtered to
        exercises visible to the user, and sorted by similarity descending. A
        failing search yields no candidates.
        """
        threshold = (
            similarity_threshold
            if similarity_threshold is not None
            else settings.TRIGRAM_SIMILARITY_THRESHOLD
        )
        self.log.info("[Tool: searchExercises] query=%r limit=%d", args.query, args.limit)

        try:
            rows = await self.repository.search_trigram(args.query, self.user_id, args.limit, threshold)
        except Exception as e:
            self.log.warning("[Tool: searchExercises] Trigram search failed: %s", e)
            rows = []

        by_id: Dict[str, ExerciseCandidate] = {}
        for row in rows:
            if not self._visible(row):
                continue
            similarity = row.get("best_similarity", row.get("similarity"))
            candidate = ExerciseCandidate(
                id=str(row["id"]),
                name=row["name"],
                similarity=float(similarity) if isinstance(similarity, (int, float)) else 0.0,
                aliases=row.get("aliases") or [],
                muscle_group=row.get("muscle_group"),
                type=row.get("type"),
                equipment=row.get("equipment"),
                created_by=row.get("created_by"),
            )
            existing = by_id.get(candidate.id)
            if existing is None or candidate.similarity > existing.similarity:
                by_id[candidate.id] = candidate

        candidates = sorted(by_id.values(), key=lambda c: c.similarity, reverse=True)[: args.limit]
        if candidates:
            self.log.info(
                "[Tool: searchExercises] %d candidate(s), best=%r (%.3f)",
                len(candidates),
                candidates[0].name,
                candidates[0].similarity,
            )
        else:
            self.log.info("[Tool: searchExercises] no candidates for %r", args.query)
        return SearchExercisesOutput(candidates=candidates)

    async def create_exercise(self, args: CreateExerciseInput) -> CreateExerciseOutput:
        """
        Find-or-create a canonical exercise.

        The title-cased name is checked against exact name and alias matches
        before inserting; missing metadata is inferred by a model call.

        Raises:
            ValueError: If the name is empty, too long or unsafe
        """
        trimmed = args.name.strip()
        if not trimmed:
            raise ValueError("Exercise name cannot be empty")
        if len(trimmed) > MAX_EXERCISE_NAME_LENGTH:
            raise ValueError(f"Exercise name too long (max {MAX_EXERCISE_NAME_LENGTH} characters)")
        if _UNSAFE_NAME.search(trimmed):
            raise ValueError("Invalid exercise name")

        name = title_case_exercise_name(trimmed)
        self.log.info("[Tool: createExercise] name=%r", name)

        existing = await self.repository.find_by_name(name, self.user_id)
        if existing:
            self.log.info("[Tool: createExercise] Found exact match, returning existing: %s", existing["id"])
            return CreateExerciseOutput(id=str(existing["id"]), name=existing["name"], was_created=False)

        try:
            alias_match = await self.repository.find_by_alias(name.lower(), self.user_id)
        except Exception as e:
            self.log.warning("[Tool: createExercise] Alias check failed: %s", e)
            alias_match = None
        if alias_match:
            self.log.info("[Tool: createExercise] Found alias match, returning existing: %s", alias_match["id"])
            return CreateExerciseOutput(id=str(alias_match["id"]), name=alias_match["name"], was_created=False)

        muscle_group, exercise_type, equipment = args.muscle_group, args.type, args.equipment
        if not (muscle_group and exercise_type and equipment):
            generated = await generate_exercise_metadata(
                self.clients, name, self.correlation_id, user_id=self.user_id
            )
            muscle_group = muscle_group or generated.muscle_group
            exercise_type = exercise_type or generated.type
            equipment = equipment or generated.equipment

        try:
            row = await self.repository.insert(
                {
                    "name": name,
                    "created_by": self.user_id,
                    "muscle_group": muscle_group,
                    "type": exercise_type,
                    "equipment": equipment,
                }
            )
        except Exception as e:
            if not is_unique_violation(e):
                raise
            # Another request created the same name first
            existing = await self.repository.find_by_name(name, self.user_id)
            if not existing:
                raise
            self.log.info("[Tool: createExercise] Name conflict, returning existing: %s", existing["id"])
            return CreateExerciseOutput(id=str(existing["id"]), name=existing["name"], was_created=False)

        self.log.info("[Tool: createExercise] Created new exercise: %s", row["id"])
        return CreateExerciseOutput(id=str(row["id"]), name=row["name"], was_created=True)

    async def dispatch(self, tool_name: str, raw_arguments: str) -> Any:
        """
        Run searchExercises or createExercise from raw JSON tool arguments.

        Raises:
            ValueError: Unknown tool, malformed JSON or invalid arguments
        """
        try:
            arguments = json.loads(raw_arguments or "{}")
        except json.JSONDecodeError as e:
            raise ValueError(f"Malformed tool arguments: {e}") from e

        try:
            if tool_name == "searchExercises":
                return await self.search_exercises(SearchExercisesInput.model_validate(arguments))
            if tool_name == "createExercise":
                return await self.create_exercise(CreateExerciseInput.model_validate(arguments))
        except ValidationError as e:
            raise ValueError(f"Invalid arguments for {tool_name}: {e.errors(include_url=False)}") from e

        raise ValueError(f"Unknown tool: {tool_name}")


def agent_tool_definitions() -> List[Dict[str, Any]]:
    return [SEARCH_EXERCISES_TOOL, CREATE_EXERCISE_TOOL, SUBMIT_RESOLUTIONS_TOOL]
