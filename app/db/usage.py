"""Database operations for per-user usage counters (``user_usage``).

The counter is only ever incremented through ``consume_ai_generation``,
which runs a single conditional UPDATE in Postgres (see the
``consume_ai_generation`` function in ``supabase/migrations``). No
read-modify-write helper exists.
"""

from datetime import UTC, datetime
from typing import Optional
from uuid import UUID

from supabase import Client

from app.core.schemas_usage import Plan, UsageCounter


async def get_usage(client: Client, user_id: UUID) -> UsageCounter:
    """Get the caller's usage row, creating a zeroed free-plan row if absent."""
    result = (
        client.table("user_usage")
        .select("*")
        .eq("user_id", str(user_id))
        .execute()
    )
    if result.data:
        return UsageCounter(**result.data[0])

    # Normally created by the signup trigger; the upsert keeps a concurrent
    # trigger insert from failing this call.
    created = (
        client.table("user_usage")
        .upsert(
            {"user_id": str(user_id), "ai_generations_used": 0, "plan": Plan.FREE.value},
            on_conflict="user_id",
            ignore_duplicates=True,
        )
        .execute()
    )
    if created.data:
        return UsageCounter(**created.data[0])

    result = client.table("user_usage").select("*").eq("user_id", str(user_id)).execute()
    return UsageCounter(**result.data[0])


async def consume_ai_generation(client: Client, user_id: UUID, limit: int) -> Optional[UsageCounter]:
    """
    Atomically add one AI generation if the counter is still below ``limit``.

    Args:
        client: Supabase client
        user_id: Owner of the counter
        limit: Plan limit; ``-1`` means unlimited

    Returns:
        The updated counter, or None when the limit was already reached
    """
    result = client.rpc(
        "consume_ai_generation",
        {"p_user_id": str(user_id), "p_limit": limit},
    ).execute()
    rows = result.data or []
    if isinstance(rows, dict):
        rows = [rows]
    if not rows:
        return None
    return UsageCounter(**rows[0])


async def set_plan(client: Client, user_id: UUID, plan: Plan) -> UsageCounter:
    """Persist the plan derived from billing state."""
    result = (
        client.table("user_usage")
        .upsert(
            {
                "user_id": str(user_id),
                "plan": plan.value,
                "updated_at": datetime.now(UTC).isoformat(),
            },
            on_conflict="user_id",
        )
        .execute()
    )
    return UsageCounter(**result.data[0])


async def reset_ai_generations(client: Client, user_id: UUID) -> None:
    """Start a new billing period for the counter."""
    (
        client.table("user_usage")
        .update({"ai_generations_used": 0, "updated_at": datetime.now(UTC).isoformat()})
        .eq("user_id", str(user_id))
        .execute()
    )
