"""
Ruleset evaluation for incoming killmails.

Pure functions: the ruleset is passed by value, so evaluation needs no
cache, store or clock.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from ...models import KillmailEvent, Ruleset


class RejectReason(str, Enum):
    BELOW_MIN_PILOTS = "below_min_pilots"
    UNLISTED = "unlisted"


@dataclass(frozen=True)
class RulesetDecision:
    accepted: bool
    reason: RejectReason | None = None

    def __bool__(self) -> bool:
        return self.accepted


ACCEPTED = RulesetDecision(accepted=True)


def involves_tracked_entity(event: KillmailEvent, ruleset: Ruleset) -> bool:
    """True if the victim or any attacker belongs to a tracked alliance or corporation."""
    if event.alliance_ids & ruleset.tracked_alliance_ids:
        return True
    return bool(event.corp_ids & ruleset.tracked_corp_ids)


def evaluate_ruleset(event: KillmailEvent, ruleset: Ruleset) -> RulesetDecision:
    """
    Decide whether a killmail passes the ruleset.

    A kill is rejected when it has fewer pilots than ``min_pilots``, or when
    ``ignore_unlisted`` is set and no alliance or corporation on either side
    is tracked. With ``ignore_unlisted`` set and empty tracked sets, nothing
    is tracked and every kill is rejected.

    Args:
        event: Killmail to evaluate
        ruleset: Active ruleset snapshot

    Returns:
        RulesetDecision (truthy when accepted)
    """
    if event.participant_count < ruleset.min_pilots:
        return RulesetDecision(accepted=False, reason=RejectReason.BELOW_MIN_PILOTS)

    if ruleset.ignore_unlisted and not involves_tracked_entity(event, ruleset):
        return RulesetDecision(accepted=False, reason=RejectReason.UNLISTED)

    return ACCEPTED
