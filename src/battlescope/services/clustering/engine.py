"""
Battle clustering engine.

Groups killmails into battles per solar system. Within a system, kills are
walked in time order and each kill either joins the open cluster or closes
it and starts a new one. A kill joins when it falls inside the overall
window measured from the cluster's first kill, and either follows the
previous kill within the maximum gap or shares an alliance with the kills
already in the cluster.

Clusters with fewer than ``min_kills`` members are not battles; their
killmail ids are reported as ignored.

The engine is a pure function of its input: no store, no clock. Battle ids
come from an injectable factory so tests can make them deterministic.
"""

from __future__ import annotations

import uuid
from collections import defaultdict
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from ...models import (
    Battle,
    BattleKillmail,
    BattleParticipant,
    BattlePlan,
    KillmailEvent,
)
from .security import build_related_url, derive_security_type


@dataclass(frozen=True)
class ClusteringParameters:
    window_minutes: int = 30
    gap_max_minutes: int = 15
    min_kills: int = 2

    def __post_init__(self) -> None:
        if self.window_minutes <= 0 or self.gap_max_minutes <= 0:
            raise ValueError("window_minutes and gap_max_minutes must be positive")
        if self.min_kills < 1:
            raise ValueError("min_kills must be at least 1")

    @property
    def window(self) -> timedelta:
        return timedelta(minutes=self.window_minutes)

    @property
    def gap_max(self) -> timedelta:
        return timedelta(minutes=self.gap_max_minutes)


@dataclass(frozen=True)
class ClusterResult:
    battles: tuple[BattlePlan, ...]
    ignored_killmail_ids: tuple[int, ...]

    @property
    def clustered_killmail_ids(self) -> tuple[int, ...]:
        return tuple(kid for plan in self.battles for kid in plan.killmail_ids)


def _sort_key(event: KillmailEvent) -> tuple:
    return (event.occurred_at, event.killmail_id)


def group_into_clusters(
    events: Sequence[KillmailEvent],
    params: ClusteringParameters,
) -> tuple[tuple[KillmailEvent, ...], ...]:
    """
    Split one system's kills into clusters.

    Args:
        events: Kills from a single system, in any order
        params: Window and gap limits

    Returns:
        Clusters in time order, each a tuple of kills in time order
    """
    clusters: list[tuple[KillmailEvent, ...]] = []
    members: list[KillmailEvent] = []
    alliances: set[int] = set()

    for event in sorted(events, key=_sort_key):
        if not members:
            members = [event]
            alliances = set(event.alliance_ids)
            continue

        gap = event.occurred_at - members[-1].occurred_at
        window = event.occurred_at - members[0].occurred_at
        correlated = not alliances.isdisjoint(event.alliance_ids)

        if window <= params.window and (gap <= params.gap_max or correlated):
            members.append(event)
            alliances |= event.alliance_ids
        else:
            clusters.append(tuple(members))
            members = [event]
            alliances = set(event.alliance_ids)

    if members:
        clusters.append(tuple(members))

    return tuple(clusters)


def extract_participants(
    battle_id: str,
    events: Iterable[KillmailEvent],
) -> tuple[BattleParticipant, ...]:
    """
    Build the deduplicated roster for a battle.

    The first appearance of a character wins, so a character who died in
    the battle's first kill keeps ``is_victim=True`` even if they also
    appear later as an attacker.
    """
    roster: dict[int, BattleParticipant] = {}

    for event in events:
        if event.victim_character_id is not None and event.victim_character_id not in roster:
            roster[event.victim_character_id] = BattleParticipant(
                battle_id=battle_id,
                character_id=event.victim_character_id,
                alliance_id=event.victim_alliance_id,
                corp_id=event.victim_corp_id,
                ship_type_id=None,
                is_victim=True,
            )

        for index, character_id in enumerate(event.attacker_character_ids):
            if character_id is None or character_id in roster:
                continue
            roster[character_id] = BattleParticipant(
                battle_id=battle_id,
                character_id=character_id,
                alliance_id=event.attacker_alliance_ids[index],
                corp_id=event.attacker_corp_ids[index],
                ship_type_id=None,
                is_victim=False,
            )

    return tuple(roster.values())


def build_battle_plan(
    system_id: int,
    events: Sequence[KillmailEvent],
    battle_id: str,
    security_status: Optional[float] = None,
) -> BattlePlan:
    ordered = sorted(events, key=_sort_key)
    start_time = ordered[0].occurred_at
    end_time = ordered[-1].occurred_at

    battle = Battle(
        id=battle_id,
        system_id=system_id,
        security_type=derive_security_type(system_id, security_status),
        start_time=start_time,
        end_time=end_time,
        total_kills=len(ordered),
        total_isk_destroyed=float(sum(e.isk_value for e in ordered if e.isk_value is not None)),
        zkill_related_url=build_related_url(system_id, start_time),
    )

    killmails = tuple(
        BattleKillmail(
            battle_id=battle_id,
            killmail_id=e.killmail_id,
            zkb_url=e.zkb_url,
            occurred_at=e.occurred_at,
            victim_alliance_id=e.victim_alliance_id,
            attacker_alliance_ids=e.attacker_alliance_ids,
            isk_value=e.isk_value,
        )
        for e in ordered
    )

    return BattlePlan(
        battle=battle,
        killmails=killmails,
        participants=extract_participants(battle_id, ordered),
    )


def _new_battle_id() -> str:
    return str(uuid.uuid4())


def cluster_killmails(
    events: Iterable[KillmailEvent],
    params: ClusteringParameters,
    id_factory: Callable[[], str] = _new_battle_id,
    security_status: Optional[Mapping[int, float]] = None,
) -> ClusterResult:
    """
    Cluster killmails into battles.

    Args:
        events: Killmails from any number of systems
        params: Clustering parameters
        id_factory: Produces a fresh battle id per emitted battle
        security_status: Optional system id to security status lookup used
            to classify known-space battles

    Returns:
        ClusterResult with battle plans and ignored killmail ids
    """
    by_system: dict[int, list[KillmailEvent]] = defaultdict(list)
    for event in events:
        by_system[event.system_id].append(event)

    battles: list[BattlePlan] = []
    ignored: list[int] = []
    lookup = security_status or {}

    for system_id in sorted(by_system):
        for cluster in group_into_clusters(by_system[system_id], params):
            if len(cluster) >= params.min_kills:
                battles.append(
                    build_battle_plan(
                        system_id,
                        cluster,
                        id_factory(),
                        security_status=lookup.get(system_id),
                    )
                )
            else:
                ignored.extend(e.killmail_id for e in cluster)

    return ClusterResult(battles=tuple(battles), ignored_killmail_ids=tuple(ignored))


class ClusteringEngine:
    """Holds clustering parameters; ``cluster()`` delegates to cluster_killmails."""

    def __init__(
        self,
        params: ClusteringParameters,
        id_factory: Callable[[], str] = _new_battle_id,
    ):
        self.params = params
        self.id_factory = id_factory

    def cluster(
        self,
        events: Iterable[KillmailEvent],
        security_status: Optional[Mapping[int, float]] = None,
    ) -> ClusterResult:
        return cluster_killmails(
            events,
            self.params,
            id_factory=self.id_factory,
            security_status=security_status,
        )
