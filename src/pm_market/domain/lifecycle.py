"""Market lifecycle state machine.

    sandbox ──(volume >= threshold)──▶ graduating ──(timer elapsed)──▶ main
       └──────────────┴─────────────────────┴──(explicit resolve)──▶ resolved

Transitions are one-directional. Only `apply_resolution` reaches resolved.
"""
import logging
from datetime import datetime

from config.settings import settings
from src.pm_common.datetime_utils import ms_to_timedelta
from src.pm_common.enums import MarketPhase, OutcomeType, Resolution
from src.pm_common.errors import AnswerNotFoundError, MarketResolvedError, ValidationError
from src.pm_market.domain.models import Contract

logger = logging.getLogger(__name__)


def check_graduation_eligibility(phase: MarketPhase, volume: float) -> bool:
    return phase == MarketPhase.SANDBOX and volume >= settings.GRADUATION_VOLUME_THRESHOLD


def check_graduation_complete(
    phase: MarketPhase, graduation_start_time: datetime | None, now: datetime
) -> bool:
    if phase != MarketPhase.GRADUATING or graduation_start_time is None:
        return False
    return now - graduation_start_time >= ms_to_timedelta(settings.GRADUATION_TIMER_MS)


def update_market_phase(contract: Contract, now: datetime) -> bool:
    """Advance the phase if its condition holds. Returns True when the phase changed."""
    changed = False
    if check_graduation_eligibility(contract.phase, contract.volume):
        contract.phase = MarketPhase.GRADUATING
        contract.graduation_start_time = now
        changed = True
        logger.info(
            "Market %s started graduation at volume %.2f", contract.id, contract.volume
        )
    if check_graduation_complete(contract.phase, contract.graduation_start_time, now):
        contract.phase = MarketPhase.MAIN
        changed = True
        logger.info("Market %s graduated to main", contract.id)
    return changed


def validate_resolution(
    contract: Contract,
    resolution: Resolution,
    winning_answer_id: str | None = None,
    resolution_probability: float | None = None,
) -> None:
    """All resolution checks, run before anything is mutated."""
    if contract.is_resolved:
        raise MarketResolvedError(contract.id)

    if contract.outcome_type == OutcomeType.BINARY:
        if resolution == Resolution.MKT:
            if resolution_probability is None or not (0 <= resolution_probability <= 1):
                raise ValidationError(
                    f"MKT resolution needs a probability in [0, 1], got {resolution_probability}"
                )
        return

    if resolution == Resolution.CANCEL:
        return
    if resolution != Resolution.YES:
        raise ValidationError(
            f"Multi-choice markets resolve to a winning answer or CANCEL, got {resolution.value}"
        )
    if winning_answer_id is None:
        raise ValidationError("Multi-choice resolution requires a winning answer id")
    if contract.find_answer(winning_answer_id) is None:
        raise AnswerNotFoundError(winning_answer_id)


def apply_resolution(
    contract: Contract,
    resolution: Resolution,
    now: datetime,
    winning_answer_id: str | None = None,
    resolution_probability: float | None = None,
) -> None:
    validate_resolution(contract, resolution, winning_answer_id, resolution_probability)

    if contract.outcome_type == OutcomeType.MULTIPLE_CHOICE:
        for answer in contract.answers:
            if resolution == Resolution.CANCEL:
                answer.resolution = Resolution.CANCEL
            else:
                answer.resolution = (
                    Resolution.YES if answer.id == winning_answer_id else Resolution.NO
                )
    elif resolution == Resolution.MKT:
        contract.resolution_probability = resolution_probability

    contract.resolution = resolution
    contract.resolution_time = now
    contract.last_updated_time = now
    contract.phase = MarketPhase.RESOLVED
    logger.info("Market %s resolved: %s", contract.id, resolution.value)
