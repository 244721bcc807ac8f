from typing import Dict

# Tier names as stored in user_entitlements.tier
TIER_FREE = "free"
TIER_PAID = "paid"
TIER_LIFETIME = "lifetime"

PREMIUM_TIERS = (TIER_PAID, TIER_LIFETIME)

# New accounts get a trial window starting at profile creation
TRIAL_DURATION_DAYS = 3

# Daily affirmation views per tier. Paid is bounded internally but reported to
# clients as unlimited (-1).
PLAN_LIMITS: Dict[str, Dict[str, int]] = {
    TIER_FREE: {
        "max_daily_affirmations": 3,
    },
    TIER_PAID: {
        "max_daily_affirmations": 50,
    },
    TIER_LIFETIME: {
        "max_daily_affirmations": 50,
    },
}

UNLIMITED = -1

# Cache TTLs (seconds)
USER_DATA_CACHE_TTL_SECONDS = 300


def is_premium(tier: str) -> bool:
    return tier in PREMIUM_TIERS


def get_plan_limit(tier: str, limit_type: str) -> int:
    """Get the limit value for a specific tier and limit type."""
    return PLAN_LIMITS.get(tier, PLAN_LIMITS[TIER_FREE]).get(limit_type, 0)


def get_daily_ceiling(tier: str) -> int:
    return get_plan_limit(tier, "max_daily_affirmations")


def subscription_cache_key(user_id: str) -> str:
    return f"user:{user_id}:subscription"
