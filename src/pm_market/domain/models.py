"""Domain models for pm_market — pure dataclasses, no business logic.

Contracts are a tagged variant: callers branch on `outcome_type`
(BINARY / MULTIPLE_CHOICE), never on whether `answers` happens to exist.
"""

from dataclasses import dataclass, field
from datetime import datetime

from src.pm_amm.domain.models import CpmmState, Pool
from src.pm_amm.engine.cpmm import get_cpmm_probability
from src.pm_common.datetime_utils import utc_now
from src.pm_common.enums import MarketPhase, OutcomeType, Resolution


@dataclass
class PriceHistoryPoint:
    timestamp: datetime
    prob_yes: float
    prob_no: float


@dataclass
class Answer:
    id: str
    text: str
    index: int
    pool: Pool
    p: float = 0.5
    prob: float = field(init=False)
    volume: float = 0.0
    resolution: Resolution | None = None

    def __post_init__(self) -> None:
        self.prob = get_cpmm_probability(self.pool, self.p)

    @property
    def state(self) -> CpmmState:
        return CpmmState(pool=self.pool, p=self.p)


@dataclass(kw_only=True)
class BaseContract:
    id: str
    question: str
    creator_id: str
    pool: Pool
    p: float = 0.5  # curve weight, never mutated after creation
    volume: float = 0.0
    phase: MarketPhase = MarketPhase.SANDBOX
    graduation_start_time: datetime | None = None
    resolution: Resolution | None = None
    resolution_probability: float | None = None
    resolution_time: datetime | None = None
    created_time: datetime = field(default_factory=utc_now)
    last_bet_time: datetime | None = None
    last_updated_time: datetime | None = None
    price_history: list[PriceHistoryPoint] = field(default_factory=list)

    @property
    def is_resolved(self) -> bool:
        return self.resolution is not None or self.phase == MarketPhase.RESOLVED

    @property
    def state(self) -> CpmmState:
        return CpmmState(pool=self.pool, p=self.p)


@dataclass(kw_only=True)
class BinaryContract(BaseContract):
    outcome_type: OutcomeType = field(default=OutcomeType.BINARY, init=False)

    @property
    def prob(self) -> float:
        return get_cpmm_probability(self.pool, self.p)


@dataclass(kw_only=True)
class MultipleChoiceContract(BaseContract):
    outcome_type: OutcomeType = field(default=OutcomeType.MULTIPLE_CHOICE, init=False)
    answers: list[Answer] = field(default_factory=list)
    should_answers_sum_to_one: bool = True

    def find_answer(self, answer_id: str | None) -> Answer | None:
        for answer in self.answers:
            if answer.id == answer_id:
                return answer
        return None


Contract = BinaryContract | MultipleChoiceContract
