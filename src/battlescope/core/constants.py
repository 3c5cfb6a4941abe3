"""
BattleScope Constants

Upstream endpoints shared by the feed, enrichment and backfill clients.
"""

# =============================================================================
# zKillboard
# =============================================================================

REDISQ_URL = "https://zkillredisq.stream/listen.php"
ZKILL_API_BASE_URL = "https://zkillboard.com/api"
ZKILL_KILLMAIL_URL = ZKILL_API_BASE_URL + "/killID/{killmail_id}/"
ZKILL_HISTORY_URL = ZKILL_API_BASE_URL + "/history/{day}.json"

# =============================================================================
# ESI
# =============================================================================

ESI_BASE_URL = "https://esi.evetech.net/latest"
ESI_KILLMAIL_URL = ESI_BASE_URL + "/killmails/{killmail_id}/{killmail_hash}/"
ESI_SYSTEM_URL = ESI_BASE_URL + "/universe/systems/{system_id}/"
