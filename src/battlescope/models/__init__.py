"""
BattleScope Models

Immutable data structures shared by the store and the services.
"""

from battlescope.models.battle import (
    Battle,
    BattleKillmail,
    BattleParticipant,
    BattlePlan,
    SecurityType,
)
from battlescope.models.enrichment import (
    EnrichmentFailed,
    EnrichmentPending,
    EnrichmentProcessing,
    EnrichmentStatus,
    EnrichmentSucceeded,
    KillmailEnrichment,
    build_enrichment,
)
from battlescope.models.killmail import KillmailEvent
from battlescope.models.ruleset import Ruleset, RulesetUpdate
from battlescope.models.ship_history import PilotShipHistory

__all__ = [
    "Battle",
    "BattleKillmail",
    "BattleParticipant",
    "BattlePlan",
    "EnrichmentFailed",
    "EnrichmentPending",
    "EnrichmentProcessing",
    "EnrichmentStatus",
    "EnrichmentSucceeded",
    "KillmailEnrichment",
    "KillmailEvent",
    "PilotShipHistory",
    "Ruleset",
    "RulesetUpdate",
    "SecurityType",
    "build_enrichment",
]
