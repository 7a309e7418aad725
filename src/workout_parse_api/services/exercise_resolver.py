"""
Exercise resolution agent.

Maps every distinct raw exercise name to a canonical exercise id. A tool
calling model searches and creates exercises, then reports its answer via a
submitResolutions call. Names it leaves unresolved get one strict direct
search and, failing that, are force-created, so the returned map always
covers every name.
"""
import asyncio
import json
import logging
import re
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from workout_parse_api.ai import AIClients, AIRequestContext, retry_async_call
from workout_parse_api.config import settings
from workout_parse_api.errors import AgentIterationLimitError, ExerciseResolutionError
from workout_parse_api.logging_utils import with_correlation
from workout_parse_api.models import (
    CreateExerciseInput,
    CreateExerciseOutput,
    ExerciseResolution,
    SearchExercisesInput,
    SubmitResolutionsInput,
)
from workout_parse_api.services.exercise_tools import ExerciseTools, agent_tool_definitions
from workout_parse_api.services.reconciler import distinct_exercise_names, normalize_exercise_name


logger = logging.getLogger(__name__)

SUMMARY_LINE = re.compile(
    r"(\d+)\.\s+(.+?)\s+->\s+([a-f0-9-]{36})\s+\((matched|created)\)",
    re.IGNORECASE,
)

SYSTEM_PROMPT = """You are a fitness exercise database assistant. Your job is to resolve exercise names to existing database entries or create new ones when needed.

For each exercise the user provides:
1. Use the searchExercises tool to find potential matches in the database
2. If you find a good match (similarity >= 0.5), use that exercise ID
3. If no good match exists, use the createExercise tool to create a new exercise entry

Guidelines:
- Be lenient with variations (e.g., "bench press" = "barbell bench press")
- Consider equipment variations (e.g., "dumbbell curl" vs "barbell curl" are different)
- Look at aliases to find alternative names
- When creating exercises, infer metadata (muscle_group, type, equipment) from the name

When every exercise is resolved, call submitResolutions exactly once with one entry per original exercise name.

You must resolve ALL exercises provided."""


class AgentState(str, Enum):
    SEARCHING = "searching"
    TOOL_CALL_PENDING = "tool-call-pending"
    SUMMARIZING = "summarizing"
    FALLBACK = "fallback"
    RESOLVED = "resolved"


def build_user_prompt(names: List[str]) -> str:
    listing = "\n".join(f"{i}. {name}" for i, name in enumerate(names, start=1))
    return f"""Please resolve the following exercises:

{listing}

For each exercise, search for it first, then decide whether to use an existing match or create a new one. You MUST provide resolutions for all {len(names)} exercises.

When done, call submitResolutions. If you cannot call it, reply with a final summary in this exact format:
RESOLUTIONS:
1. [Original Exercise Name] -> [Exercise ID] (matched/created)
2. [Original Exercise Name] -> [Exercise ID] (matched/created)
etc."""


def _assistant_message(message: Any) -> Dict[str, Any]:
    entry: Dict[str, Any] = {"role": "assistant", "content": message.content}
    if message.tool_calls:
        entry["tool_calls"] = [
            {
                "id": call.id,
                "type": "function",
                "function": {"name": call.function.name, "arguments": call.function.arguments},
            }
            for call in message.tool_calls
        ]
    return entry


class ExerciseResolutionAgent:
    """Resolves raw exercise names for one user within one request."""

    def __init__(
        self,
        tools: ExerciseTools,
        clients: AIClients,
        model: Optional[str] = None,
        max_iterations: Optional[int] = None,
        summary_parsing: Optional[bool] = None,
        parallel_tool_calls: Optional[bool] = None,
    ):
        self.tools = tools
        self.clients = clients
        self.model = model or settings.AGENT_MODEL
        self.max_iterations = max_iterations or settings.AGENT_MAX_ITERATIONS
        self.summary_parsing = (
            settings.AGENT_SUMMARY_PARSING if summary_parsing is None else summary_parsing
        )
        self.parallel_tool_calls = (
            settings.AGENT_PARALLEL_TOOL_CALLS if parallel_tool_calls is None else parallel_tool_calls
        )
        self.state = AgentState.SEARCHING
        self.log = with_correlation(logger, tools.correlation_id)
        # normalized name -> spelling as first given
        self._names: Dict[str, str] = {}
        self._resolved: Dict[str, ExerciseResolution] = {}

    def _key_for(self, name: str) -> Optional[str]:
        key = normalize_exercise_name(name)
        return key if key in self._names else None

    def _record(self, name: str, resolution: ExerciseResolution) -> bool:
        key = self._key_for(name)
        if key is None or key in self._resolved:
            return False
        self._resolved[key] = resolution
        return True

    def _unresolved(self) -> List[str]:
        return [original for key, original in self._names.items() if key not in self._resolved]

    async def resolve(self, exercise_names: List[str]) -> Dict[str, ExerciseResolution]:
        """
        Resolve every name, returning a map keyed by each name as given.

        Raises:
            AgentIterationLimitError: The model kept calling tools past the cap
            ExerciseResolutionError: A name stayed unresolved after fallback
        """
        distinct = distinct_exercise_names(exercise_names)
        self._names = {normalize_exercise_name(name): name for name in distinct}
        self._resolved = {}
        self.state = AgentState.SEARCHING

        if not distinct:
            self.state = AgentState.RESOLVED
            return {}

        self.log.info("Agent resolving %d exercise(s)", len(distinct))

        final_content = await self._run_loop(distinct)

        self.state = AgentState.SUMMARIZING
        if final_content and self.summary_parsing and self._unresolved():
            await self._apply_summary(final_content)

        missing = self._unresolved()
        if missing:
            self.state = AgentState.FALLBACK
            for name in missing:
                await self._fallback_resolve(name)

        still_missing = self._unresolved()
        if still_missing:
            raise ExerciseResolutionError(f"Agent failed to resolve exercise: {still_missing[0]}")

        self.state = AgentState.RESOLVED
        created = sum(1 for r in self._resolved.values() if r.was_created)
        self.log.info(
            "Resolved %d exercise(s): %d matched, %d created",
            len(self._resolved),
            len(self._resolved) - created,
            created,
        )

        result: Dict[str, ExerciseResolution] = {}
        for name in exercise_names:
            key = normalize_exercise_name(name)
            if key in self._resolved:
                result[name] = self._resolved[key]
        return result

    async def _complete(self, messages: List[Dict[str, Any]]) -> Any:
        context = AIRequestContext(
            user_id=self.tools.user_id,
            feature_name="resolve_exercises",
            request_id=self.tools.correlation_id,
        )
        return await self.clients.openai.chat.completions.create(
            model=self.model,
            messages=messages,
            tools=agent_tool_definitions(),
            tool_choice="auto",
            extra_headers=context.request_headers() or None,
        )

    async def _run_loop(self, names: List[str]) -> str:
        """Drive the tool-calling conversation; returns the final text, if any."""
        messages: List[Dict[str, Any]] = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": build_user_prompt(names)},
        ]

        submitted_incomplete = False
        for iteration in range(1, self.max_iterations + 1):
            self.state = AgentState.SEARCHING
            response = await retry_async_call(self._complete, messages)
            if not response.choices:
                raise ExerciseResolutionError("No response choice from OpenAI")

            message = response.choices[0].message
            messages.append(_assistant_message(message))

            if not message.tool_calls:
                self.log.info("[Agent] Completed after %d iteration(s)", iteration)
                return message.content or ""

            self.state = AgentState.TOOL_CALL_PENDING
            self.log.info(
                "[Agent] Iteration %d: processing %d tool call(s)",
                iteration,
                len(message.tool_calls),
            )

            submitted = False
            if self.parallel_tool_calls:
                outputs = await asyncio.gather(*(self._execute_tool_call(c) for c in message.tool_calls))
            else:
                outputs = [await self._execute_tool_call(c) for c in message.tool_calls]

            for call, content in zip(message.tool_calls, outputs):
                messages.append({"role": "tool", "tool_call_id": call.id, "content": content})
                if call.function.name == "submitResolutions":
                    submitted = True

            if submitted:
                if not self._unresolved():
                    self.log.info("[Agent] Resolutions submitted after %d iteration(s)", iteration)
                    return message.content or ""
                submitted_incomplete = True
                self.log.info(
                    "[Agent] Submission left %d name(s) unresolved, continuing",
                    len(self._unresolved()),
                )
            else:
                submitted_incomplete = False

        if submitted_incomplete:
            # The last turn was a submission; what it missed goes to fallback
            return ""
        raise AgentIterationLimitError(
            f"Agent exceeded maximum iterations ({self.max_iterations})"
        )

    async def _execute_tool_call(self, call: Any) -> str:
        """Run one tool call; errors become an error payload for the model."""
        name = call.function.name
        self.log.info("[Agent] Tool call: %s(%s)", name, call.function.arguments)
        try:
            if name == "submitResolutions":
                result: Any = await self._submit_resolutions(call.function.arguments)
            else:
                result = await self.tools.dispatch(name, call.function.arguments)
                if isinstance(result, CreateExerciseOutput):
                    self._record_created(call.function.arguments, result)
        except Exception as e:
            self.log.warning("[Agent] Tool %s failed: %s", name, e)
            return json.dumps({"error": str(e)})

        if hasattr(result, "model_dump_json"):
            return result.model_dump_json()
        return json.dumps(result)

    def _record_created(self, raw_arguments: str, output: CreateExerciseOutput) -> None:
        requested = json.loads(raw_arguments or "{}").get("name", "")
        self._record(
            requested,
            ExerciseResolution(
                exercise_id=output.id,
                exercise_name=output.name,
                was_created=output.was_created,
            ),
        )

    async def _submit_resolutions(self, raw_arguments: str) -> Dict[str, Any]:
        try:
            submission = SubmitResolutionsInput.model_validate(json.loads(raw_arguments or "{}"))
        except (json.JSONDecodeError, ValidationError) as e:
            raise ValueError(f"Invalid submitResolutions arguments: {e}") from e

        accepted = 0
        rejected: List[str] = []
        for item in submission.resolutions:
            if self._key_for(item.name) is None:
                rejected.append(item.name)
                continue
            try:
                row = await self.tools.repository.get_by_id(item.exercise_id, self.tools.user_id)
            except Exception as e:
                self.log.warning("[Agent] Could not verify exercise %s for %r: %s", item.exercise_id, item.name, e)
                row = None
            if not row:
                rejected.append(item.name)
                continue
            if self._record(
                item.name,
                ExerciseResolution(
                    exercise_id=str(row["id"]),
                    exercise_name=row["name"],
                    was_created=item.status == "created",
                ),
            ):
                accepted += 1

        return {"accepted": accepted, "rejected": rejected, "unresolved": self._unresolved()}

    async def _apply_summary(self, content: str) -> None:
        """Compatibility path: read `N. name -> id (matched|created)` lines."""
        for match in SUMMARY_LINE.finditer(content):
            original = match.group(2).strip()
            exercise_id = match.group(3)
            key = self._key_for(original)
            if key is None or key in self._resolved:
                continue
            try:
                row = await self.tools.repository.get_by_id(exercise_id, self.tools.user_id)
            except Exception as e:
                self.log.warning("[Agent] Could not verify exercise %s for %r: %s", exercise_id, original, e)
                continue
            if not row:
                self.log.warning("[Agent] Summary referenced unknown exercise %s for %r", exercise_id, original)
                continue
            self._record(
                original,
                ExerciseResolution(
                    exercise_id=exercise_id,
                    exercise_name=row.get("name") or original,
                    was_created=match.group(4).lower() == "created",
                ),
            )

    async def _fallback_resolve(self, name: str) -> None:
        threshold = settings.FALLBACK_SIMILARITY_THRESHOLD
        self.log.info("[Agent] Missing resolution for %r, attempting fallback search", name)
        try:
            search = await self.tools.search_exercises(
                SearchExercisesInput(query=name[:200], limit=1),
                similarity_threshold=threshold,
            )
            best = search.candidates[0] if search.candidates else None
            if best is not None and best.similarity >= threshold:
                resolution = ExerciseResolution(
                    exercise_id=best.id,
                    exercise_name=best.name,
                    was_created=False,
                )
            else:
                created = await self.tools.create_exercise(CreateExerciseInput(name=name))
                resolution = ExerciseResolution(
                    exercise_id=created.id,
                    exercise_name=created.name,
                    was_created=created.was_created,
                )
        except Exception as e:
            self.log.error("[Agent] Fallback failed for %r: %s", name, e)
            raise ExerciseResolutionError(f"Fallback failed for {name!r}: {e}") from e
        self._record(name, resolution)
