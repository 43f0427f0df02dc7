"""XP calculation, levels, rank requirements and the progression ledger."""
