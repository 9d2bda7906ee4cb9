# src/pm_order/application/schemas.py
from datetime import datetime

from pydantic import BaseModel

from src.pm_order.domain.models import Bet, TakerFill


class FillResponse(BaseModel):
    matched_bet_id: str | None
    amount: float
    shares: float

    @classmethod
    def from_domain(cls, fill: TakerFill) -> "FillResponse":
        return cls(matched_bet_id=fill.matched_bet_id, amount=fill.amount, shares=fill.shares)


class BetResponse(BaseModel):
    id: str
    contract_id: str
    user_id: str
    answer_id: str | None = None
    outcome: str
    amount: float
    shares: float
    prob_before: float
    prob_after: float
    limit_prob: float | None = None
    order_amount: float | None = None
    is_filled: bool
    is_cancelled: bool
    expires_at: datetime | None = None
    created_time: datetime | None = None

    @classmethod
    def from_domain(cls, bet: Bet) -> "BetResponse":
        return cls(
            id=bet.id,
            contract_id=bet.contract_id,
            user_id=bet.user_id,
            answer_id=bet.answer_id,
            outcome=bet.outcome.value,
            amount=bet.amount,
            shares=bet.shares,
            prob_before=bet.prob_before,
            prob_after=bet.prob_after,
            limit_prob=bet.limit_prob,
            order_amount=bet.order_amount,
            is_filled=bet.is_filled,
            is_cancelled=bet.is_cancelled,
            expires_at=bet.expires_at,
            created_time=bet.created_time,
        )


class PlaceBetResponse(BaseModel):
    shares: float
    prob_after: float
    fills: list[FillResponse]
    bet: BetResponse


class SellSharesResponse(BaseModel):
    payout: float
    prob_after: float
    bet: BetResponse


class LimitOrderResponse(BaseModel):
    order: BetResponse
    fills: list[FillResponse]
    remaining_amount: float


class CancelOrderResponse(BaseModel):
    order_id: str
    refund: float


class ExpireOrdersResponse(BaseModel):
    expired_count: int
    total_refunded: float


class OrderListResponse(BaseModel):
    items: list[BetResponse]
