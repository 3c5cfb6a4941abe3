"""
System classification helpers for battles.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from ...models import SecurityType

ZKILL_RELATED_URL = "https://zkillboard.com/related/{system_id}/{stamp}/"

# Solar system id ranges assigned by CCP
WORMHOLE_SYSTEM_RANGE = range(31_000_000, 32_000_000)
POCHVEN_SYSTEM_RANGE = range(32_000_000, 33_000_000)


def derive_space_type(system_id: int) -> str:
    """
    Classify a system id as "kspace", "jspace" (wormhole) or "pochven".
    """
    if system_id in POCHVEN_SYSTEM_RANGE:
        return "pochven"
    if system_id in WORMHOLE_SYSTEM_RANGE:
        return "jspace"
    return "kspace"


def derive_security_type(
    system_id: int,
    security_status: Optional[float] = None,
) -> SecurityType:
    """
    Derive the security classification of a system.

    Wormhole and Pochven systems are recognised from their id range. Known
    space needs the system's security status; without it the result is
    SecurityType.KSPACE.

    Args:
        system_id: Solar system id
        security_status: Raw security status (-1.0 to 1.0), if known

    Returns:
        SecurityType for the system
    """
    space_type = derive_space_type(system_id)
    if space_type == "jspace":
        return SecurityType.WORMHOLE
    if space_type == "pochven":
        return SecurityType.POCHVEN

    if security_status is None:
        return SecurityType.KSPACE
    if security_status >= 0.45:  # 0.45 rounds to 0.5
        return SecurityType.HIGHSEC
    if security_status >= 0.05:  # 0.05 rounds to 0.1
        return SecurityType.LOWSEC
    return SecurityType.NULLSEC


def build_related_url(system_id: int, start_time: datetime) -> str:
    """
    Build the zKillboard related-kills URL for a battle.

    The stamp is the battle start in UTC, formatted YYYYMMDDHHMM.
    """
    stamp = start_time.astimezone(timezone.utc).strftime("%Y%m%d%H%M")
    return ZKILL_RELATED_URL.format(system_id=system_id, stamp=stamp)
