"""Tests for ruleset evaluation."""

from __future__ import annotations

from battlescope.models import Ruleset
from battlescope.services.ruleset import RejectReason, evaluate_ruleset, involves_tracked_entity


class TestMinPilots:
    def test_default_ruleset_accepts(self, event_factory):
        assert evaluate_ruleset(event_factory(1), Ruleset.default())

    def test_below_min_pilots_rejected(self, event_factory):
        # Victim plus one attacker = 2 pilots
        decision = evaluate_ruleset(event_factory(1), Ruleset(min_pilots=3))

        assert not decision
        assert decision.reason is RejectReason.BELOW_MIN_PILOTS

    def test_exactly_min_pilots_accepted(self, event_factory):
        assert evaluate_ruleset(event_factory(1), Ruleset(min_pilots=2))

    def test_repeated_attacker_counted_once(self, event_factory):
        event = event_factory(1, attackers=[(None, 98000002, 501)] * 4)
        assert event.participant_count == 2
        assert not evaluate_ruleset(event, Ruleset(min_pilots=3))


class TestTrackedEntities:
    def test_ignore_unlisted_rejects_untracked(self, event_factory):
        ruleset = Ruleset(ignore_unlisted=True, tracked_alliance_ids=frozenset({99000009}))
        decision = evaluate_ruleset(event_factory(1), ruleset)

        assert not decision
        assert decision.reason is RejectReason.UNLISTED

    def test_tracked_attacker_alliance_accepted(self, event_factory):
        event = event_factory(1, attackers=[(99000009, 98000002, 501)])
        ruleset = Ruleset(ignore_unlisted=True, tracked_alliance_ids=frozenset({99000009}))
        assert evaluate_ruleset(event, ruleset)

    def test_tracked_victim_corp_accepted(self, event_factory):
        event = event_factory(1, victim_corp_id=98000042)
        ruleset = Ruleset(ignore_unlisted=True, tracked_corp_ids=frozenset({98000042}))
        assert evaluate_ruleset(event, ruleset)

    def test_ignore_unlisted_with_nothing_tracked_rejects_all(self, event_factory):
        assert not evaluate_ruleset(event_factory(1), Ruleset(ignore_unlisted=True))

    def test_tracked_lists_without_ignore_unlisted_accept_all(self, event_factory):
        ruleset = Ruleset(tracked_alliance_ids=frozenset({99000009}))
        assert evaluate_ruleset(event_factory(1), ruleset)

    def test_involves_tracked_entity(self, event_factory):
        event = event_factory(1, victim_alliance_id=99000001)
        assert involves_tracked_entity(event, Ruleset(tracked_alliance_ids=frozenset({99000001})))
        assert not involves_tracked_entity(event, Ruleset())
