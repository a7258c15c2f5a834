"""Rank tiers shown next to guesses and in game summaries."""

WINNER_TIER = "winner"
HOT_TIER = "hot"
WARM_TIER = "warm"
COLD_TIER = "cold"

HOT_MAX_RANK = 100
WARM_MAX_RANK = 1000


def rank_tier(rank: int | None) -> str | None:
    """Map a rank to its tier; ``None`` stays ``None``."""
    if rank is None:
        return None
    if rank == 1:
        return WINNER_TIER
    if rank <= HOT_MAX_RANK:
        return HOT_TIER
    if rank <= WARM_MAX_RANK:
        return WARM_TIER
    return COLD_TIER
