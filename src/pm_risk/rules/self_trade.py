"""Self-trade detection for book matching.

A taker never fills against its own resting orders; those orders are
skipped during the walk and stay open.
"""


def is_self_trade(incoming_user_id: str, resting_user_id: str) -> bool:
    """Predicate used by matching_algo to skip self-trade fills. Case-insensitive."""
    return str(incoming_user_id).lower() == str(resting_user_id).lower()
