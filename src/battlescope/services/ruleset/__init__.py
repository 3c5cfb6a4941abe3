"""
Ruleset filtering and caching.

Usage:
    from battlescope.services.ruleset import RedisRulesetCache, evaluate_ruleset

    cache = RedisRulesetCache(store, redis, ttl_seconds=300)
    await cache.start_invalidation_listener()

    decision = evaluate_ruleset(event, await cache.get())
"""

from .cache import (
    RULESET_CACHE_KEY,
    RULESET_INVALIDATION_CHANNEL,
    RedisRulesetCache,
    RulesetCache,
    StoreRulesetCache,
    publish_ruleset_invalidation,
)
from .filter import RejectReason, RulesetDecision, evaluate_ruleset, involves_tracked_entity

__all__ = [
    "RULESET_CACHE_KEY",
    "RULESET_INVALIDATION_CHANNEL",
    "RedisRulesetCache",
    "RejectReason",
    "RulesetCache",
    "RulesetDecision",
    "StoreRulesetCache",
    "evaluate_ruleset",
    "involves_tracked_entity",
    "publish_ruleset_invalidation",
]
