"""Domain models for pm_account — pure dataclasses, no store dependency."""

from dataclasses import dataclass


@dataclass
class User:
    id: str
    balance: float = 0.0  # never negative


@dataclass
class Metric:
    """Position of one user in one contract (or one answer of a multi-choice contract)."""

    user_id: str
    contract_id: str
    answer_id: str | None = None
    total_shares_yes: float = 0.0
    total_shares_no: float = 0.0
    invested: float = 0.0  # cost basis still held
    has_yes_shares: bool = False
    has_no_shares: bool = False

    @property
    def key(self) -> tuple[str, str, str | None]:
        return (self.user_id, self.contract_id, self.answer_id)
