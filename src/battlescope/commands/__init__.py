"""
BattleScope Commands

Command implementations for the battlescope CLI.
Each module handles a logical group of related commands.
"""

from . import health, pipeline, ruleset, ship_history

__all__ = [
    "health",
    "pipeline",
    "ruleset",
    "ship_history",
]
