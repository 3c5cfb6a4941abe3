"""
Battle clustering.

Usage:
    from battlescope.services.clustering import ClusteringEngine, ClusteringParameters

    engine = ClusteringEngine(ClusteringParameters(window_minutes=30, gap_max_minutes=15))
    result = engine.cluster(killmails)
"""

from .engine import (
    ClusteringEngine,
    ClusteringParameters,
    ClusterResult,
    build_battle_plan,
    cluster_killmails,
    extract_participants,
    group_into_clusters,
)
from .security import build_related_url, derive_security_type, derive_space_type
from .service import ClustererService, ClustererStats
from .system_security import SystemSecurityResolver, fetch_system_security

__all__ = [
    "ClusterResult",
    "ClustererService",
    "ClustererStats",
    "ClusteringEngine",
    "ClusteringParameters",
    "SystemSecurityResolver",
    "build_battle_plan",
    "build_related_url",
    "cluster_killmails",
    "derive_security_type",
    "derive_space_type",
    "extract_participants",
    "fetch_system_security",
    "group_into_clusters",
]
