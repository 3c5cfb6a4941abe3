"""
Ruleset model.

The active ruleset is an immutable, versioned value. Ingestion workers hold
a reference to the current Ruleset and swap it for a new one when the
cache reports a change; nothing mutates a Ruleset in place.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from ..core.formatters import format_datetime, parse_datetime


def _id_set(values: Optional[Iterable[Any]]) -> frozenset[int]:
    if not values:
        return frozenset()
    return frozenset(int(v) for v in values)


@dataclass(frozen=True)
class Ruleset:
    """Operator-defined ingestion filter."""

    min_pilots: int = 1
    tracked_alliance_ids: frozenset[int] = field(default_factory=frozenset)
    tracked_corp_ids: frozenset[int] = field(default_factory=frozenset)
    ignore_unlisted: bool = False
    updated_by: Optional[str] = None
    version: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def default(cls) -> Ruleset:
        """Ruleset used when none has been stored yet: accept everything."""
        return cls()

    @property
    def has_tracked_entities(self) -> bool:
        return bool(self.tracked_alliance_ids or self.tracked_corp_ids)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the Redis cache and CLI output."""
        return {
            "min_pilots": self.min_pilots,
            "tracked_alliance_ids": sorted(self.tracked_alliance_ids),
            "tracked_corp_ids": sorted(self.tracked_corp_ids),
            "ignore_unlisted": self.ignore_unlisted,
            "updated_by": self.updated_by,
            "version": self.version,
            "created_at": format_datetime(self.created_at) if self.created_at else None,
            "updated_at": format_datetime(self.updated_at) if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Ruleset:
        created = data.get("created_at")
        updated = data.get("updated_at")
        return cls(
            min_pilots=int(data.get("min_pilots", 1)),
            tracked_alliance_ids=_id_set(data.get("tracked_alliance_ids")),
            tracked_corp_ids=_id_set(data.get("tracked_corp_ids")),
            ignore_unlisted=bool(data.get("ignore_unlisted", False)),
            updated_by=data.get("updated_by"),
            version=int(data.get("version", 0)),
            created_at=parse_datetime(created) if created else None,
            updated_at=parse_datetime(updated) if updated else None,
        )


@dataclass(frozen=True)
class RulesetUpdate:
    """
    Replacement values for the active ruleset.

    Raises:
        ValueError: If min_pilots is below 1
    """

    min_pilots: int = 1
    tracked_alliance_ids: frozenset[int] = field(default_factory=frozenset)
    tracked_corp_ids: frozenset[int] = field(default_factory=frozenset)
    ignore_unlisted: bool = False
    updated_by: Optional[str] = None

    def __post_init__(self) -> None:
        if self.min_pilots < 1:
            raise ValueError(f"min_pilots must be at least 1, got {self.min_pilots}")
        object.__setattr__(self, "tracked_alliance_ids", _id_set(self.tracked_alliance_ids))
        object.__setattr__(self, "tracked_corp_ids", _id_set(self.tracked_corp_ids))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> RulesetUpdate:
        """Build an update from a YAML/JSON document."""
        return cls(
            min_pilots=int(data.get("min_pilots", 1)),
            tracked_alliance_ids=_id_set(data.get("tracked_alliance_ids")),
            tracked_corp_ids=_id_set(data.get("tracked_corp_ids")),
            ignore_unlisted=bool(data.get("ignore_unlisted", False)),
            updated_by=data.get("updated_by"),
        )
