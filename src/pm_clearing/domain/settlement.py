"""Market settlement — pay out positions of a resolved market and zero them."""
from dataclasses import dataclass

from src.pm_account.domain.models import Metric
from src.pm_common.enums import OutcomeType, Resolution
from src.pm_common.errors import InternalError
from src.pm_market.domain.models import Contract


@dataclass
class Payout:
    user_id: str
    answer_id: str | None
    amount: float


def _binary_payout(metric: Metric, contract: Contract) -> float:
    resolution = contract.resolution
    if resolution == Resolution.YES:
        return metric.total_shares_yes
    if resolution == Resolution.NO:
        return metric.total_shares_no
    if resolution == Resolution.MKT:
        q = contract.resolution_probability
        return metric.total_shares_yes * q + metric.total_shares_no * (1 - q)
    return metric.invested  # CANCEL


def _answer_payout(metric: Metric, contract: Contract) -> float:
    if contract.resolution == Resolution.CANCEL:
        return metric.invested
    answer = contract.find_answer(metric.answer_id)
    if answer is None:
        raise InternalError(f"Metric references unknown answer {metric.answer_id}")
    if answer.resolution == Resolution.YES:
        return metric.total_shares_yes
    return metric.total_shares_no


def compute_payout(metric: Metric, contract: Contract) -> float:
    """Cash owed to one position. Contract must already carry its resolution."""
    if contract.resolution is None:
        raise InternalError(f"Cannot settle unresolved contract {contract.id}")
    if contract.outcome_type == OutcomeType.MULTIPLE_CHOICE:
        return _answer_payout(metric, contract)
    return _binary_payout(metric, contract)


def zero_metric(metric: Metric) -> None:
    metric.total_shares_yes = 0.0
    metric.total_shares_no = 0.0
    metric.invested = 0.0
    metric.has_yes_shares = False
    metric.has_no_shares = False


def settle_metrics(contract: Contract, metrics: list[Metric]) -> list[Payout]:
    """Payouts for every position of the contract. Metrics are zeroed in place."""
    payouts: list[Payout] = []
    for metric in metrics:
        amount = compute_payout(metric, contract)
        zero_metric(metric)
        if amount > 0:
            payouts.append(Payout(metric.user_id, metric.answer_id, amount))
    return payouts
