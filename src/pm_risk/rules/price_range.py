from src.pm_common.errors import ValidationError


def check_limit_prob(limit_prob: float) -> None:
    """Raise ValidationError unless limit_prob is strictly inside (0, 1)."""
    if not (0 < limit_prob < 1):
        raise ValidationError(f"Limit prob must be between 0 and 1, got {limit_prob}")
