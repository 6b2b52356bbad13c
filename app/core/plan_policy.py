"""Plan limits and the usage permission check.

Pure functions only. The same check runs on the client for advisory UI
state and on the server before any completion call; only the server
result is enforced.
"""

from app.core.schemas_usage import (
    UNLIMITED,
    CounterSnapshot,
    Plan,
    PlanLimits,
    UsagePermissions,
)

PLAN_LIMITS: dict[Plan, PlanLimits] = {
    Plan.FREE: PlanLimits(
        ai_generations=1,
        documents=3,
        features=["Basic templates", "PDF export", "Email support"],
    ),
    Plan.PRO: PlanLimits(
        ai_generations=10,
        documents=50,
        features=["All templates", "PDF & Google export", "Priority support", "Team collaboration"],
    ),
    Plan.BUSINESS: PlanLimits(
        ai_generations=UNLIMITED,
        documents=UNLIMITED,
        features=[
            "Everything in Pro",
            "Custom templates",
            "API access",
            "Dedicated support",
            "Advanced analytics",
        ],
    ),
}


def coerce_plan(plan: Plan | str | None) -> Plan:
    """Map any input to a known plan. Unknown values fall back to free."""
    if isinstance(plan, Plan):
        return plan
    try:
        return Plan(str(plan).strip().lower())
    except ValueError:
        return Plan.FREE


def limits_for(plan: Plan | str | None) -> PlanLimits:
    """Return the limits of a plan (unknown plans get the free tier's limits)."""
    return PLAN_LIMITS[coerce_plan(plan)]


def within_limit(used: int, limit: int) -> bool:
    """True when one more unit may be consumed. A limit of 0 always denies."""
    if limit == UNLIMITED:
        return True
    return used < limit


def can_perform(counters: CounterSnapshot, limits: PlanLimits) -> UsagePermissions:
    return UsagePermissions(
        can_use_ai=within_limit(counters.ai_generations_used, limits.ai_generations),
        can_create_document=within_limit(counters.documents_count, limits.documents),
    )
