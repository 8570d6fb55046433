from __future__ import annotations

from typing import Any, Dict, List, Optional

from classroom.db.supabase import get_supabase


class ChallengesRepository:
    _CHALLENGES = "challenges"
    _RESPONSES = "challenge_responses"

    async def get_challenge(self, challenge_id: str) -> Optional[Dict[str, Any]]:
        client = await get_supabase()
        resp = await client.table(self._CHALLENGES).select("*").eq("id", challenge_id).limit(1).execute()
        rows = resp.data or []
        return rows[0] if rows else None

    async def get_response(self, challenge_id: str, student_id: str) -> Optional[Dict[str, Any]]:
        client = await get_supabase()
        resp = await (
            client.table(self._RESPONSES)
            .select("*")
            .eq("challenge_id", challenge_id)
            .eq("student_id", student_id)
            .limit(1)
            .execute()
        )
        rows = resp.data or []
        return rows[0] if rows else None

    async def get_response_by_id(self, response_id: str) -> Optional[Dict[str, Any]]:
        client = await get_supabase()
        resp = await client.table(self._RESPONSES).select("*").eq("id", response_id).limit(1).execute()
        rows = resp.data or []
        return rows[0] if rows else None

    async def upsert_response(self, record: Dict[str, Any]) -> Dict[str, Any]:
        client = await get_supabase()
        resp = await client.table(self._RESPONSES).upsert(record, on_conflict="challenge_id,student_id").execute()
        rows = resp.data or []
        return rows[0] if rows else record

    async def update_review(
        self,
        response_id: str,
        patch: Dict[str, Any],
        previous_reviewed_at: Optional[str],
    ) -> List[Dict[str, Any]]:
        """Apply a review only if ``reviewed_at`` still holds the value the reviewer loaded.

        Returns the updated rows; an empty list means another review won the race.
        """
        client = await get_supabase()
        query = client.table(self._RESPONSES).update(patch).eq("id", response_id)
        if previous_reviewed_at is None:
            query = query.is_("reviewed_at", "null")
        else:
            query = query.eq("reviewed_at", previous_reviewed_at)
        resp = await query.execute()
        return resp.data or []


challenges_repository = ChallengesRepository()

__all__ = ["challenges_repository", "ChallengesRepository"]
