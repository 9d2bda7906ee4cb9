"""Bounded price history for charting."""
from datetime import datetime

from config.settings import settings
from src.pm_amm.engine.cpmm import get_cpmm_probability
from src.pm_common.enums import OutcomeType
from src.pm_market.domain.models import Contract, PriceHistoryPoint


def current_prob(contract: Contract, answer_id: str | None = None) -> float:
    """YES probability of the contract, or of one answer of a multi-choice contract."""
    if contract.outcome_type == OutcomeType.MULTIPLE_CHOICE:
        answer = contract.find_answer(answer_id)
        if answer is None:
            # no specific answer: chart the leading answer
            answer = max(contract.answers, key=lambda a: a.prob)
        return get_cpmm_probability(answer.pool, answer.p)
    return get_cpmm_probability(contract.pool, contract.p)


def record_price_point(
    contract: Contract, now: datetime, answer_id: str | None = None
) -> PriceHistoryPoint:
    """Append a point derived from the current pool; keep only the newest entries."""
    prob_yes = current_prob(contract, answer_id)
    point = PriceHistoryPoint(timestamp=now, prob_yes=prob_yes, prob_no=1 - prob_yes)
    contract.price_history.append(point)
    limit = settings.PRICE_HISTORY_LIMIT
    if len(contract.price_history) > limit:
        del contract.price_history[: len(contract.price_history) - limit]
    return point
