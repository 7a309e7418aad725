"""
Constrained parser: turn free-text workout notes into a ParsedWorkout.

The model is forced into the ParsedWorkout JSON schema (OpenAI structured
outputs, or a forced tool call on Anthropic). The primary model is tried
once; on a non-refusal failure the fallback model is tried once. The whole
attempt is bounded by PARSE_TIMEOUT_SECONDS.
"""
import asyncio
import logging
from typing import Any, Optional

from pydantic import ValidationError

from workout_parse_api.ai import AIClients, AIRequestContext, provider_for_model
from workout_parse_api.config import settings
from workout_parse_api.errors import ApiError, ParserRefusalError
from workout_parse_api.logging_utils import with_correlation
from workout_parse_api.models import ParsedWorkout, WeightUnit, WorkoutRequest
from workout_parse_api.services.normalizer import KG_TO_LB


logger = logging.getLogger(__name__)

_NULLABLE_STRING = {"type": ["string", "null"]}

WORKOUT_JSON_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "required": ["isWorkoutRelated", "notes", "type", "exercises"],
    "properties": {
        "isWorkoutRelated": {"type": "boolean"},
        "notes": _NULLABLE_STRING,
        "type": _NULLABLE_STRING,
        "exercises": {
            "type": "array",
            "description": "List of exercises performed in order",
            "items": {
                "type": "object",
                "additionalProperties": False,
                "required": ["name", "order_index", "notes", "sets"],
                "properties": {
                    "name": {"type": "string"},
                    "order_index": {"type": "integer"},
                    "notes": _NULLABLE_STRING,
                    "sets": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "additionalProperties": False,
                            "required": ["set_number", "reps", "weight", "rpe", "notes", "is_warmup"],
                            "properties": {
                                "set_number": {"type": "integer"},
                                "reps": {"type": ["integer", "null"]},
                                "weight": {"type": ["number", "null"]},
                                "rpe": {"type": ["number", "null"]},
                                "notes": _NULLABLE_STRING,
                                "is_warmup": {"type": "boolean"},
                            },
                        },
                    },
                },
            },
        },
    },
}

SYSTEM_PROMPT = "You are a workout tracking assistant that extracts structured workout data from user notes."

_ANTHROPIC_TOOL_NAME = "record_workout"


def build_parse_prompt(notes: str, weight_unit: WeightUnit) -> str:
    if weight_unit == "lb":
        conversion = (
            "If weights are in kg, convert to lbs using this formula: "
            f"weight_in_lbs = weight_in_kg × {KG_TO_LB}"
        )
    else:
        conversion = (
            "If weights are in lbs, convert to kg using this formula: "
            f"weight_in_kg = weight_in_lbs ÷ {KG_TO_LB}"
        )

    return f"""Parse the following workout notes and extract structured data that matches our database schema.

User's Workout Notes:
"{notes}"

Weight Unit: {weight_unit}

Instructions:
1. Set isWorkoutRelated to false if the notes do not describe exercise performed by the user
2. Extract each exercise with its name, sets, reps, and weight
3. Preserve the order of exercises as they appear in the notes (order_index starts at 0)
4. Expand set notation: "3x10" is three sets of 10 reps; "135x8" is one set of 8 reps at 135
5. If the user mentions warm-up sets or sets without specific reps, include them but mark reps as null
6. Set is_warmup to true only when the notes explicitly label a set as a warm-up
7. Bodyweight sets have weight null
8. Convert all weights to {weight_unit}. {conversion}
9. Extract RPE (Rate of Perceived Exertion) if mentioned
10. Leave all 'notes' and 'type' fields as null - we handle those separately

Return structured data following the schema."""


def _is_refusal_error(error: BaseException) -> bool:
    """Provider errors that mean the content itself was rejected."""
    code = getattr(error, "code", None)
    if code in ("content_policy_violation", "content_filter"):
        return True
    return "content_policy" in str(error).lower()


class WorkoutNotesParser:
    """Single-shot structured-generation parser with a fallback model."""

    def __init__(
        self,
        clients: AIClients,
        primary_model: Optional[str] = None,
        fallback_model: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.clients = clients
        self.primary_model = primary_model or settings.PARSER_MODEL
        self.fallback_model = fallback_model if fallback_model is not None else settings.PARSER_FALLBACK_MODEL
        self.timeout_seconds = timeout_seconds or settings.PARSE_TIMEOUT_SECONDS

    async def parse(self, payload: WorkoutRequest, correlation_id: str) -> ParsedWorkout:
        """
        Parse the request notes.

        Raises:
            ApiError: CONTENT_REFUSED on a model refusal, PARSE_FAILED (500)
                when every model failed, PARSE_FAILED (408) on timeout
        """
        log = with_correlation(logger, correlation_id)
        log.info("Parsing workout notes (unit=%s)", payload.weight_unit)
        try:
            return await asyncio.wait_for(
                self._parse_with_fallback(payload, correlation_id),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            log.error("Workout parsing timed out after %.0fs", self.timeout_seconds)
            raise ApiError(408, "PARSE_FAILED", "Workout parsing timed out")

    async def _parse_with_fallback(self, payload: WorkoutRequest, correlation_id: str) -> ParsedWorkout:
        log = with_correlation(logger, correlation_id)
        prompt = build_parse_prompt(payload.notes, payload.weight_unit)

        models = [self.primary_model]
        if self.fallback_model and self.fallback_model != self.primary_model:
            models.append(self.fallback_model)

        last_error: Optional[BaseException] = None
        for model in models:
            context = AIRequestContext(
                user_id=payload.user_id,
                feature_name="parse_workout",
                request_id=correlation_id,
                custom_properties={"model": model},
            )
            try:
                parsed = await self._call_model(model, prompt, context)
                log.info("Model %s parsed %d exercise(s)", model, len(parsed.exercises))
                return parsed
            except ParserRefusalError as e:
                log.warning("Model %s refused the notes: %s", model, e)
                raise ApiError(
                    400,
                    "CONTENT_REFUSED",
                    "AI refused to process this content for safety reasons",
                )
            except Exception as e:
                if _is_refusal_error(e):
                    log.warning("Model %s rejected the notes by content policy: %s", model, e)
                    raise ApiError(
                        400,
                        "CONTENT_REFUSED",
                        "AI refused to process this content for safety reasons",
                    )
                log.warning("Model %s failed to parse notes: %s", model, e)
                last_error = e

        raise ApiError(500, "PARSE_FAILED", "Workout parsing failed", str(last_error))

    async def _call_model(self, model: str, prompt: str, context: AIRequestContext) -> ParsedWorkout:
        if provider_for_model(model) == "anthropic":
            return await self._call_anthropic(model, prompt, context)
        return await self._call_openai(model, prompt, context)

    async def _call_openai(self, model: str, prompt: str, context: AIRequestContext) -> ParsedWorkout:
        response = await self.clients.openai.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            response_format={
                "type": "json_schema",
                "json_schema": {
                    "name": "parsed_workout",
                    "strict": True,
                    "schema": WORKOUT_JSON_SCHEMA,
                },
            },
            extra_headers=context.request_headers() or None,
        )
        choice = response.choices[0] if response.choices else None
        if choice is None:
            raise ValueError("No response choice from OpenAI")

        message = choice.message
        refusal = getattr(message, "refusal", None)
        if refusal or choice.finish_reason == "content_filter":
            raise ParserRefusalError(refusal or "content_filter")
        if not message.content:
            raise ValueError("Empty response from OpenAI")

        try:
            return ParsedWorkout.model_validate_json(message.content)
        except ValidationError as e:
            raise ValueError(f"Model output did not match the workout schema: {e}") from e

    async def _call_anthropic(self, model: str, prompt: str, context: AIRequestContext) -> ParsedWorkout:
        response = await self.clients.anthropic.messages.create(
            model=model,
            max_tokens=4096,
            system=SYSTEM_PROMPT,
            messages=[{"role": "user", "content": prompt}],
            tools=[
                {
                    "name": _ANTHROPIC_TOOL_NAME,
                    "description": "Record the parsed workout.",
                    "input_schema": WORKOUT_JSON_SCHEMA,
                }
            ],
            tool_choice={"type": "tool", "name": _ANTHROPIC_TOOL_NAME},
            extra_headers=context.request_headers() or None,
        )
        if response.stop_reason == "refusal":
            raise ParserRefusalError("refusal")

        for block in response.content:
            if getattr(block, "type", None) == "tool_use":
                try:
                    return ParsedWorkout.model_validate(block.input)
                except ValidationError as e:
                    raise ValueError(f"Model output did not match the workout schema: {e}") from e

        raise ValueError("No structured output from Anthropic")
