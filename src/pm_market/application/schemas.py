# src/pm_market/application/schemas.py
from datetime import datetime

from pydantic import BaseModel

from src.pm_common.enums import OutcomeType
from src.pm_market.domain.models import Answer, Contract
from src.pm_market.domain.price_history import current_prob


class AnswerResponse(BaseModel):
    id: str
    text: str
    index: int
    prob: float
    volume: float
    pool: dict[str, float]
    resolution: str | None = None

    @classmethod
    def from_domain(cls, answer: Answer) -> "AnswerResponse":
        return cls(
            id=answer.id,
            text=answer.text,
            index=answer.index,
            prob=answer.prob,
            volume=answer.volume,
            pool=answer.pool.to_dict(),
            resolution=answer.resolution.value if answer.resolution else None,
        )


class ContractResponse(BaseModel):
    id: str
    question: str
    creator_id: str
    outcome_type: str
    phase: str
    prob: float | None = None  # binary only
    p: float
    pool: dict[str, float]
    volume: float
    answers: list[AnswerResponse] = []
    should_answers_sum_to_one: bool | None = None
    resolution: str | None = None
    resolution_probability: float | None = None
    created_time: datetime
    graduation_start_time: datetime | None = None
    resolution_time: datetime | None = None

    @classmethod
    def from_domain(cls, contract: Contract) -> "ContractResponse":
        is_multi = contract.outcome_type == OutcomeType.MULTIPLE_CHOICE
        return cls(
            id=contract.id,
            question=contract.question,
            creator_id=contract.creator_id,
            outcome_type=contract.outcome_type.value,
            phase=contract.phase.value,
            prob=None if is_multi else current_prob(contract),
            p=contract.p,
            pool=contract.pool.to_dict(),
            volume=contract.volume,
            answers=[AnswerResponse.from_domain(a) for a in contract.answers] if is_multi else [],
            should_answers_sum_to_one=contract.should_answers_sum_to_one if is_multi else None,
            resolution=contract.resolution.value if contract.resolution else None,
            resolution_probability=contract.resolution_probability,
            created_time=contract.created_time,
            graduation_start_time=contract.graduation_start_time,
            resolution_time=contract.resolution_time,
        )


class ResolveMarketResponse(BaseModel):
    resolution: str
    cancelled_orders: int
    total_payout: float


class GraduationResponse(BaseModel):
    graduated: int
