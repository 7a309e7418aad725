"""Supabase-backed repositories for canonical exercises and workout sessions."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from workout_parse_api.config import settings


logger = logging.getLogger(__name__)

EXERCISES_TABLE = "exercises"
SESSIONS_TABLE = "workout_sessions"
WORKOUT_EXERCISES_TABLE = "workout_exercises"
SETS_TABLE = "sets"
TRIGRAM_RPC = "match_exercises_trgm"

CREATED_WORKOUT_SELECT = """
  *,
  workout_exercises (
    *,
    exercise:exercises (*),
    sets (*)
  )
"""

_client = None


async def get_supabase_client():
    """Get the process-wide async Supabase client, creating it on first use."""
    global _client
    if _client is not None:
        return _client

    from supabase import acreate_client

    if not settings.SUPABASE_URL or not settings.SUPABASE_SERVICE_ROLE_KEY:
        raise ValueError(
            "Supabase credentials not configured. Set SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY."
        )

    _client = await acreate_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)
    logger.debug("Created async Supabase client")
    return _client


def is_unique_violation(error: BaseException) -> bool:
    """True for Postgres unique-constraint violations (SQLSTATE 23505)."""
    if getattr(error, "code", None) == "23505":
        return True
    text = str(error).lower()
    return "duplicate" in text or "unique" in text or "23505" in text


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _visible_to(user_id: str) -> str:
    # Global exercises plus the user's own
    return f"created_by.is.null,created_by.eq.{user_id}"


class ExerciseRepository:
    """Queries against the canonical exercise table."""

    def __init__(self, client: Any):
        self.client = client

    async def search_trigram(
        self,
        query: str,
        user_id: str,
        limit: int,
        similarity_threshold: float,
    ) -> List[Dict[str, Any]]:
        """Trigram similarity over names and aliases (best_similarity per row)."""
        result = await self.client.rpc(
            TRIGRAM_RPC,
            {
                "search_query": query,
                "requesting_user_id": user_id,
                "match_count": limit,
                "similarity_threshold": similarity_threshold,
            },
        ).execute()
        return result.data or []

    async def find_by_name(self, name: str, user_id: str) -> Optional[Dict[str, Any]]:
        """Case-insensitive exact name match."""
        result = await (
            self.client.table(EXERCISES_TABLE)
            .select("*")
            .ilike("name", _escape_like(name))
            .or_(_visible_to(user_id))
            .limit(1)
            .execute()
        )
        return result.data[0] if result.data else None

    async def find_by_alias(self, alias: str, user_id: str) -> Optional[Dict[str, Any]]:
        """Alias containment match; aliases are stored lower-case."""
        result = await (
            self.client.table(EXERCISES_TABLE)
            .select("*")
            .contains("aliases", [alias.lower()])
            .or_(_visible_to(user_id))
            .limit(1)
            .execute()
        )
        return result.data[0] if result.data else None

    async def get_by_id(self, exercise_id: str, user_id: str) -> Optional[Dict[str, Any]]:
        result = await (
            self.client.table(EXERCISES_TABLE)
            .select("id, name")
            .eq("id", exercise_id)
            .or_(_visible_to(user_id))
            .limit(1)
            .execute()
        )
        return result.data[0] if result.data else None

    async def insert(self, row: Dict[str, Any]) -> Dict[str, Any]:
        result = await self.client.table(EXERCISES_TABLE).insert(row).execute()
        if not result.data:
            raise RuntimeError("Failed to create exercise")
        return result.data[0]


class WorkoutRepository:
    """Writes and reads for sessions, exercise links and sets."""

    def __init__(self, client: Any):
        self.client = client

    async def insert_session(self, row: Dict[str, Any]) -> Dict[str, Any]:
        result = await self.client.table(SESSIONS_TABLE).insert(row).execute()
        if not result.data:
            raise RuntimeError("Failed to create workout session")
        return result.data[0]

    async def insert_workout_exercises(self, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if not rows:
            return []
        result = await self.client.table(WORKOUT_EXERCISES_TABLE).insert(rows).execute()
        return result.data or []

    async def insert_sets(self, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if not rows:
            return []
        result = await self.client.table(SETS_TABLE).insert(rows).execute()
        return result.data or []

    async def delete_session(self, session_id: str) -> None:
        # Links and sets cascade
        await self.client.table(SESSIONS_TABLE).delete().eq("id", session_id).execute()

    async def fetch_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        result = await (
            self.client.table(SESSIONS_TABLE)
            .select(CREATED_WORKOUT_SELECT)
            .eq("id", session_id)
            .limit(1)
            .execute()
        )
        return result.data[0] if result.data else None


class Database:
    """Bundle of repositories sharing one client."""

    def __init__(self, client: Any):
        self.exercises = ExerciseRepository(client)
        self.workouts = WorkoutRepository(client)


async def get_database() -> Database:
    """FastAPI dependency returning repositories over the shared client."""
    return Database(await get_supabase_client())
