"""
BattleScope - killmail ingestion and battle clustering

Consumes the zKillboard RedisQ feed, filters killmails against an operator
ruleset, enriches them with full payloads and groups correlated kills into
battles.

Package structure:
    battlescope/
    ├── core/                 # Config, logging, errors, retry, datetime helpers
    ├── services/
    │   ├── killmail_store/   # SQLite store and migrations
    │   ├── ruleset/          # Ruleset filter and Redis read-through cache
    │   ├── ingest/           # RedisQ source, ingestion loop, history backfill
    │   ├── enrichment/       # Detail source, state machine, queue and worker
    │   ├── clustering/       # Battle clustering engine and batch service
    │   ├── ship_history/     # Pilot ship-history processor and rebuild
    │   └── health.py         # /healthz endpoint
    └── commands/             # CLI command implementations

Usage as CLI:
    python -m battlescope ingest
    python -m battlescope cluster --once
    python -m battlescope ship-history reset --mode full
"""

__version__ = "1.0.0"
