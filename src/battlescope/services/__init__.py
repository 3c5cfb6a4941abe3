"""BattleScope pipeline services."""
