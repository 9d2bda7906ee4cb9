import math

from src.pm_common.errors import ValidationError


def check_positive_amount(amount: float, what: str = "Amount") -> None:
    """Raise ValidationError unless amount is a finite number > 0."""
    if not math.isfinite(amount) or amount <= 0:
        raise ValidationError(f"{what} must be positive, got {amount}")
