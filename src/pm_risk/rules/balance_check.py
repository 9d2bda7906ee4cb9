from src.pm_account.domain.models import User
from src.pm_common.errors import InsufficientBalanceError


def check_balance(user: User, amount: float) -> None:
    """Raise InsufficientBalanceError if the user cannot fund `amount`."""
    if user.balance < amount:
        raise InsufficientBalanceError(amount, user.balance)
