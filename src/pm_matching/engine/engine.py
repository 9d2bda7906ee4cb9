"""TradingEngine: stateful orchestrator for trades, limit orders and expiry.

Every state-changing operation follows the same shape:

    lock(contract) -> lock(user) -> validate -> plan (pure) -> commit

A plan (TradePlan) holds every pool, balance, position, bet and order
change of the trade. Commit verifies the pool invariants first, so a
violation aborts before anything is written. At most one user lock is held
at a time, always after the contract lock; credits to other users (maker
refunds) go through the store's atomic balance update without a lock.
"""
import asyncio
import logging
from collections import defaultdict
from datetime import datetime

from src.pm_account.domain.ledger import apply_buy, apply_sell, resolve_sell_shares
from src.pm_amm.domain.models import Pool
from src.pm_amm.engine.cpmm import calculate_cpmm_sale, get_cpmm_probability
from src.pm_amm.engine.invariants import verify_pool, verify_probability
from src.pm_arbitrage.engine.solver import (
    calculate_multi_arbitrage_buy,
    calculate_multi_arbitrage_sell,
)
from src.pm_common.datetime_utils import Clock, utc_now
from src.pm_common.enums import Outcome, OutcomeType
from src.pm_common.errors import (
    AlreadyCancelledError,
    AlreadyFilledError,
    AnswerNotFoundError,
    AppError,
    InternalError,
    OrderNotFoundError,
    UnauthorizedError,
    ValidationError,
)
from src.pm_common.id_generator import generate_id
from src.pm_market.domain.lifecycle import update_market_phase
from src.pm_market.domain.models import Answer, Contract
from src.pm_market.domain.price_history import current_prob, record_price_point
from src.pm_matching.domain.models import (
    BetResult,
    ExpiryResult,
    LimitOrderResult,
    OrderFill,
    PositionDelta,
    SaleResult,
    TradePlan,
)
from src.pm_order.domain.models import Bet, Fill, FillResult, TakerFill
from src.pm_order.engine.matching_algo import compute_fills
from src.pm_order.engine.order_book import LimitOrderBook
from src.pm_risk.rules.balance_check import check_balance
from src.pm_risk.rules.market_status import check_market_tradable
from src.pm_risk.rules.order_limit import check_positive_amount
from src.pm_risk.rules.price_range import check_limit_prob
from src.pm_store.domain.repository import StoreProtocol

logger = logging.getLogger(__name__)


def _is_dependent(contract: Contract) -> bool:
    return (
        contract.outcome_type == OutcomeType.MULTIPLE_CHOICE
        and contract.should_answers_sum_to_one
    )


class TradingEngine:
    def __init__(
        self,
        store: StoreProtocol,
        order_book: LimitOrderBook | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._book = order_book if order_book is not None else LimitOrderBook()
        self._clock = clock
        self._contract_locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._user_locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._expiry_lock = asyncio.Lock()

    @property
    def store(self) -> StoreProtocol:
        return self._store

    @property
    def order_book(self) -> LimitOrderBook:
        return self._book

    def now(self) -> datetime:
        return self._clock()

    def contract_lock(self, contract_id: str) -> asyncio.Lock:
        return self._contract_locks[contract_id]

    def user_lock(self, user_id: str) -> asyncio.Lock:
        return self._user_locks[user_id]

    # ------------------------------------------------------------------
    # Market orders and sells
    # ------------------------------------------------------------------

    async def place_market_order(
        self,
        contract_id: str,
        user_id: str,
        amount: float,
        outcome: Outcome = Outcome.YES,
        answer_id: str | None = None,
    ) -> BetResult:
        """Buy `amount` of `outcome`: resting orders first, then the AMM."""
        check_positive_amount(amount)
        async with self.contract_lock(contract_id):
            contract = check_market_tradable(
                await self._store.get_contract(contract_id), contract_id
            )
            answer = self._resolve_answer(contract, answer_id)
            async with self.user_lock(user_id):
                check_balance(await self._store.get_or_create_user(user_id), amount)
                now = self.now()
                bet = Bet(
                    id=generate_id("bet_"),
                    contract_id=contract_id,
                    user_id=user_id,
                    amount=amount,
                    shares=0.0,
                    outcome=outcome,
                    prob_before=0.0,
                    prob_after=0.0,
                    answer_id=answer_id,
                    created_time=now,
                )
                plan = TradePlan(contract=contract)
                plan.add_balance(user_id, -amount)
                shares, prob_before, prob_after, fills = self._plan_taker_buy(
                    plan, contract, answer, bet, amount, now
                )
                bet.shares = shares
                bet.prob_before = prob_before
                bet.prob_after = prob_after
                bet.fills = [Fill(f.matched_bet_id, f.amount, f.shares, now) for f in fills]
                plan.new_bets.append(bet)
                await self._commit(plan, now)
            logger.info(
                "Bet %s: %s bought %.4f %s shares for %.2f on %s",
                bet.id, user_id, shares, outcome.value, amount, contract_id,
            )
            await self._check_and_fill_locked(contract)
        return BetResult(bet=bet, fills=fills)

    async def sell_shares(
        self,
        contract_id: str,
        user_id: str,
        outcome: Outcome = Outcome.YES,
        answer_id: str | None = None,
        shares: float | None = None,
    ) -> SaleResult:
        """Sell `shares` held (all of them when omitted) back to the market."""
        async with self.contract_lock(contract_id):
            contract = check_market_tradable(
                await self._store.get_contract(contract_id), contract_id
            )
            answer = self._resolve_answer(contract, answer_id)
            async with self.user_lock(user_id):
                metric = await self._store.get_or_create_metric(user_id, contract_id, answer_id)
                to_sell = resolve_sell_shares(metric, outcome, shares)
                now = self.now()
                plan = TradePlan(contract=contract, price_answer_id=answer_id)
                bet_id = generate_id("bet_")

                if answer is not None and _is_dependent(contract):
                    sale = calculate_multi_arbitrage_sell(
                        contract.answers, answer, outcome, to_sell,
                        self._orders_by_answer(contract.id, now),
                        self._book.escrow_by_user(contract.id), user_id,
                    )
                    for result in sale.arbitrage.all_results:
                        self._plan_fill(plan, result.answer_id, result.fill, bet_id)
                    payout = sale.payout
                    prob_before = sale.arbitrage.new_bet_result.fill.prob_before
                    prob_after = get_cpmm_probability(
                        plan.pools[answer.id], answer.p
                    )
                else:
                    state = answer.state if answer is not None else contract.state
                    cpmm_sale = calculate_cpmm_sale(state, to_sell, outcome)
                    plan.pools[answer_id] = cpmm_sale.new_pool
                    payout = cpmm_sale.payout
                    if answer_id is not None:
                        plan.add_volume(answer_id, abs(payout))
                    prob_before = cpmm_sale.prob_before
                    prob_after = cpmm_sale.prob_after

                plan.contract_volume += abs(payout)
                plan.add_balance(user_id, payout)
                plan.positions.append(PositionDelta(user_id, answer_id, outcome, -to_sell))
                bet = Bet(
                    id=bet_id,
                    contract_id=contract_id,
                    user_id=user_id,
                    amount=-payout,
                    shares=-to_sell,
                    outcome=outcome,
                    prob_before=prob_before,
                    prob_after=prob_after,
                    answer_id=answer_id,
                    created_time=now,
                )
                plan.new_bets.append(bet)
                await self._commit(plan, now)
            logger.info(
                "Bet %s: %s sold %.4f %s shares for %.2f on %s",
                bet.id, user_id, to_sell, outcome.value, payout, contract_id,
            )
            await self._check_and_fill_locked(contract)
        return SaleResult(bet=bet, payout=payout)

    # ------------------------------------------------------------------
    # Limit orders
    # ------------------------------------------------------------------

    async def place_limit_order(
        self,
        contract_id: str,
        user_id: str,
        outcome: Outcome,
        amount: float,
        limit_prob: float,
        expires_at: datetime | None = None,
        answer_id: str | None = None,
    ) -> LimitOrderResult:
        """Fill immediately if the price already satisfies the limit, else rest in the book.

        Either way the full amount leaves the user's balance: a resting
        order's funds stay escrowed until it fills, expires or is cancelled.
        """
        check_positive_amount(amount)
        check_limit_prob(limit_prob)
        async with self.contract_lock(contract_id):
            contract = check_market_tradable(
                await self._store.get_contract(contract_id), contract_id
            )
            answer = self._resolve_answer(contract, answer_id)
            async with self.user_lock(user_id):
                check_balance(await self._store.get_or_create_user(user_id), amount)
                now = self.now()
                if expires_at is not None and expires_at <= now:
                    raise ValidationError(f"Expiry {expires_at.isoformat()} is not in the future")
                prob = current_prob(contract, answer_id)
                order = Bet(
                    id=generate_id("order_"),
                    contract_id=contract_id,
                    user_id=user_id,
                    amount=0.0,
                    shares=0.0,
                    outcome=outcome,
                    prob_before=prob,
                    prob_after=prob,
                    answer_id=answer_id,
                    limit_prob=limit_prob,
                    order_amount=amount,
                    is_filled=False,
                    expires_at=expires_at,
                    created_time=now,
                )
                plan = TradePlan(contract=contract, price_answer_id=answer_id)
                plan.add_balance(user_id, -amount)
                fills: list[TakerFill] = []
                if order.crossed_by(prob):
                    shares, _, prob_after, fills = self._plan_taker_buy(
                        plan, contract, answer, order, amount, now
                    )
                    plan.order_fills.append(OrderFill(order, amount, shares, prob_after))
                plan.new_bets.append(order)
                await self._commit(plan, now)
            if fills:
                logger.info(
                    "Limit order %s filled immediately: %.2f %s at prob %.4f <= limit %.4f",
                    order.id, amount, outcome.value, prob, limit_prob,
                )
                await self._check_and_fill_locked(contract)
            else:
                logger.info(
                    "Limit order %s resting: %.2f %s limit %.4f on %s",
                    order.id, amount, outcome.value, limit_prob, contract_id,
                )
        return LimitOrderResult(order=order, fills=fills)

    async def check_and_fill_limit_orders(self, contract_id: str) -> int:
        """Fill every open order of the contract whose limit the price has crossed."""
        async with self.contract_lock(contract_id):
            contract = await self._store.get_contract(contract_id)
            if contract is None:
                return 0
            return await self._check_and_fill_locked(contract)

    async def cancel_order(self, user_id: str, order_id: str) -> float:
        """Cancel the caller's open order. Returns the refunded remainder."""
        order = self._book.find(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        if order.user_id != user_id:
            raise UnauthorizedError(order_id)
        async with self.contract_lock(order.contract_id):
            async with self.user_lock(user_id):
                if order.is_cancelled:
                    raise AlreadyCancelledError(order_id)
                if order.is_filled:
                    raise AlreadyFilledError(order_id)
                refund = await self._cancel_orders([order])
        logger.info("Order %s cancelled by %s, refunded %.2f", order_id, user_id, refund)
        return refund

    async def cancel_open_orders_locked(self, contract_id: str) -> tuple[int, float]:
        """Cancel every open order of a contract. Caller holds the contract lock."""
        orders = self._book.get_all_open_orders(contract_id)
        refunded = await self._cancel_orders(orders)
        return len(orders), refunded

    async def expire_limit_orders(self) -> ExpiryResult:
        """Cancel and refund every open order past its expiry. Never raises for one bad order."""
        result = ExpiryResult()
        async with self._expiry_lock:
            now = self.now()
            for contract_id in self._book.contract_ids():
                async with self.contract_lock(contract_id):
                    for order in self._book.get_all_open_orders(contract_id):
                        if not order.is_expired(now):
                            continue
                        try:
                            refund = await self._cancel_orders([order])
                        except AppError:
                            logger.exception("Failed to expire order %s", order.id)
                            continue
                        result.expired_count += 1
                        result.total_refunded += refund
        if result.expired_count:
            logger.info(
                "Expired %d limit orders, refunded %.2f",
                result.expired_count, result.total_refunded,
            )
        return result

    def get_user_open_orders(self, user_id: str) -> list[Bet]:
        return self._book.get_user_open_orders(user_id)

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def _resolve_answer(self, contract: Contract, answer_id: str | None) -> Answer | None:
        if contract.outcome_type == OutcomeType.BINARY:
            if answer_id is not None:
                raise ValidationError("Binary contracts have no answers")
            return None
        if answer_id is None:
            raise ValidationError("answer_id is required for multi-choice contracts")
        answer = contract.find_answer(answer_id)
        if answer is None:
            raise AnswerNotFoundError(answer_id)
        return answer

    def _orders_by_answer(self, contract_id: str, now: datetime) -> dict[str | None, list[Bet]]:
        grouped: dict[str | None, list[Bet]] = defaultdict(list)
        for order in self._book.get_active_limit_orders(contract_id, now):
            grouped[order.answer_id].append(order)
        return grouped

    def _plan_fill(
        self, plan: TradePlan, answer_id: str | None, fill: FillResult, taker_bet_id: str
    ) -> None:
        """Pool, volume, maker fills and cancellations of one executed leg."""
        plan.pools[answer_id] = fill.new_pool
        if answer_id is not None:
            plan.add_volume(answer_id, fill.amount)
        for maker in fill.makers:
            order = self._book.find(maker.bet_id)
            if order is None:
                raise InternalError(f"Matched order {maker.bet_id} missing from book")
            plan.order_fills.append(
                OrderFill(order, maker.amount, maker.shares, fill.prob_after, taker_bet_id)
            )
            plan.positions.append(
                PositionDelta(maker.user_id, answer_id, maker.outcome, maker.shares, maker.amount)
            )
        for order in fill.orders_to_cancel:
            plan.cancel(order)

    def _plan_taker_buy(
        self,
        plan: TradePlan,
        contract: Contract,
        answer: Answer | None,
        bet: Bet,
        amount: float,
        now: datetime,
    ) -> tuple[float, float, float, list[TakerFill]]:
        """Plan a buy of `amount` for `bet`. Returns (shares, prob_before, prob_after, fills)."""
        answer_id = answer.id if answer is not None else None
        orders_by_answer = self._orders_by_answer(contract.id, now)
        escrow = self._book.escrow_by_user(contract.id)

        if answer is not None and _is_dependent(contract):
            arbitrage = calculate_multi_arbitrage_buy(
                contract.answers, answer, bet.outcome, amount,
                orders_by_answer, escrow, bet.user_id,
            )
            main = arbitrage.new_bet_result.fill
            self._plan_fill(plan, answer_id, main, bet.id)
            for side in arbitrage.other_bet_results:
                self._plan_fill(plan, side.answer_id, side.fill, bet.id)
                if side.fill.takers:
                    plan.new_bets.append(self._redemption_bet(bet, side.answer_id, side.fill, now))
            shares = arbitrage.taker_shares_by_answer[answer_id][bet.outcome]
            fills = main.takers
            prob_before = main.prob_before
            prob_after = get_cpmm_probability(plan.pools[answer_id], answer.p)
        else:
            state = answer.state if answer is not None else contract.state
            fill = compute_fills(
                state, bet.outcome, amount, orders_by_answer.get(answer_id, []),
                escrow, bet.user_id,
            )
            self._plan_fill(plan, answer_id, fill, bet.id)
            shares = fill.shares
            fills = fill.takers
            prob_before = fill.prob_before
            prob_after = fill.prob_after

        plan.contract_volume += amount
        plan.positions.append(PositionDelta(bet.user_id, answer_id, bet.outcome, shares, amount))
        plan.price_answer_id = answer_id
        return shares, prob_before, prob_after, fills

    def _redemption_bet(
        self, bet: Bet, answer_id: str, fill: FillResult, now: datetime
    ) -> Bet:
        """Record of a side purchase whose shares were redeemed into the main bet."""
        return Bet(
            id=generate_id("bet_"),
            contract_id=bet.contract_id,
            user_id=bet.user_id,
            amount=fill.amount,
            shares=fill.shares,
            outcome=fill.outcome,
            prob_before=fill.prob_before,
            prob_after=fill.prob_after,
            answer_id=answer_id,
            is_redemption=True,
            created_time=now,
        )

    # ------------------------------------------------------------------
    # Resting-order sweep
    # ------------------------------------------------------------------

    async def _check_and_fill_locked(self, contract: Contract) -> int:
        if contract.is_resolved:
            return 0
        filled = 0
        # every pass either fills or cancels one order, so the loop is bounded
        for _ in range(len(self._book.get_all_open_orders(contract.id)) + 1):
            now = self.now()
            order = next(
                (
                    o for o in self._book.get_active_limit_orders(contract.id, now)
                    if o.crossed_by(current_prob(contract, o.answer_id))
                ),
                None,
            )
            if order is None:
                break
            try:
                await self._fill_resting_order(contract, order, now)
            except InternalError:
                raise
            except AppError as exc:
                logger.warning("Cancelling unfillable order %s: %s", order.id, exc.message)
                await self._cancel_orders([order])
                continue
            filled += 1
        return filled

    async def _fill_resting_order(self, contract: Contract, order: Bet, now: datetime) -> None:
        answer = self._resolve_answer(contract, order.answer_id)
        amount = order.remaining_amount
        plan = TradePlan(contract=contract)
        shares, _, prob_after, _ = self._plan_taker_buy(plan, contract, answer, order, amount, now)
        plan.order_fills.append(OrderFill(order, amount, shares, prob_after))
        await self._commit(plan, now)
        logger.info(
            "Limit order %s crossed at %.4f: filled %.2f for %.4f shares",
            order.id, prob_after, amount, shares,
        )

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    def _verify_plan(self, plan: TradePlan) -> None:
        contract = plan.contract
        for answer_id, pool in plan.pools.items():
            label = f"{contract.id}/{answer_id}" if answer_id else contract.id
            p = contract.p
            if answer_id is not None:
                answer = contract.find_answer(answer_id)
                if answer is None:
                    raise InternalError(f"Plan touches unknown answer {label}")
                p = answer.p
            verify_pool(pool, label)
            verify_probability(get_cpmm_probability(pool, p), label)

    async def _commit(self, plan: TradePlan, now: datetime) -> None:
        self._verify_plan(plan)
        contract = plan.contract

        # debits first: the only step that can still be refused
        for user_id, delta in plan.balance_deltas.items():
            if delta < 0:
                await self._store.update_user_balance(user_id, delta)

        if contract.outcome_type == OutcomeType.BINARY:
            contract.pool = plan.pools.get(None, contract.pool)
        else:
            for answer in contract.answers:
                if answer.id in plan.pools:
                    answer.pool = plan.pools[answer.id]
                    answer.prob = get_cpmm_probability(answer.pool, answer.p)
                answer.volume += plan.volume.get(answer.id, 0.0)
            contract.pool = Pool(
                yes=sum(a.pool.yes for a in contract.answers),
                no=sum(a.pool.no for a in contract.answers),
            )
        contract.volume += plan.contract_volume

        for user_id, delta in plan.balance_deltas.items():
            if delta > 0:
                await self._store.update_user_balance(user_id, delta)

        for change in plan.positions:
            metric = await self._store.get_or_create_metric(
                change.user_id, contract.id, change.answer_id
            )
            if change.shares >= 0:
                apply_buy(metric, change.outcome, change.shares, change.amount)
            else:
                apply_sell(metric, change.outcome, -change.shares)
            await self._store.update_metric(metric)

        new_ids = {b.id for b in plan.new_bets}
        for order_fill in plan.order_fills:
            order_fill.order.record_fill(
                order_fill.amount, order_fill.shares, order_fill.prob_after,
                order_fill.matched_bet_id, now,
            )
            if order_fill.order.id not in new_ids:
                await self._store.update_bet(order_fill.order)
        for order in plan.cancelled_orders:
            order.is_cancelled = True
            await self._store.update_bet(order)
        for bet in plan.new_bets:
            await self._store.add_bet(contract.id, bet)
            if bet.is_limit_order:
                self._book.add(bet)

        contract.last_bet_time = now
        contract.last_updated_time = now
        update_market_phase(contract, now)
        point = record_price_point(contract, now, plan.price_answer_id)
        await self._store.add_price_point(contract.id, point)
        await self._store.save_contract(contract)

    async def _cancel_orders(self, orders: list[Bet]) -> float:
        """Mark orders cancelled and refund their unfilled remainders."""
        refunded = 0.0
        for order in orders:
            if not order.is_open:
                continue
            refund = max(order.remaining_amount, 0.0)
            order.is_cancelled = True
            await self._store.update_bet(order)
            if refund > 0:
                await self._store.update_user_balance(order.user_id, refund)
            refunded += refund
        return refunded
