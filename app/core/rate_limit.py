"""
Request rate limits (slowapi).

Every route gets GLOBAL_RATE_LIMIT per client address; the RevenueCat webhook has
its own, tighter limit. Counters live in Redis when REDIS_URL is set so all
instances share them, otherwise in process memory.
"""
import os

from slowapi import Limiter
from slowapi.util import get_remote_address

GLOBAL_RATE_LIMIT = "100/minute"
WEBHOOK_RATE_LIMIT = "50/minute"

RATE_LIMIT_CODE = "TOO_MANY_REQUESTS"
RATE_LIMIT_MESSAGE = "Rate limit exceeded. Please try again later."

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[GLOBAL_RATE_LIMIT],
    storage_uri=os.getenv("REDIS_URL") or "memory://",
    # Keep limiting from memory if Redis goes away
    in_memory_fallback_enabled=True,
)
