from dataclasses import dataclass, field
from datetime import datetime

from src.pm_order.domain.models import Bet


@dataclass
class LimitOrderBook:
    """Resting limit orders per contract, kept in placement order.

    Orders are never removed: fills and cancellations are recorded on the
    order itself, so the book doubles as the order history.
    """

    _orders: dict[str, list[Bet]] = field(default_factory=dict)
    _order_index: dict[str, str] = field(default_factory=dict)
    # _order_index[order_id] = contract_id

    def add(self, order: Bet) -> None:
        self._orders.setdefault(order.contract_id, []).append(order)
        self._order_index[order.id] = order.contract_id

    def get_orders(self, contract_id: str) -> list[Bet]:
        return list(self._orders.get(contract_id, []))

    def get_open_orders(self, contract_id: str, answer_id: str | None = None) -> list[Bet]:
        return [
            o for o in self._orders.get(contract_id, [])
            if o.is_open and o.answer_id == answer_id
        ]

    def get_all_open_orders(self, contract_id: str) -> list[Bet]:
        return [o for o in self._orders.get(contract_id, []) if o.is_open]

    def get_active_limit_orders(self, contract_id: str, now: datetime) -> list[Bet]:
        """Open orders that have not passed their expiry."""
        return [o for o in self.get_all_open_orders(contract_id) if not o.is_expired(now)]

    def find(self, order_id: str) -> Bet | None:
        contract_id = self._order_index.get(order_id)
        if contract_id is None:
            return None
        for order in self._orders[contract_id]:
            if order.id == order_id:
                return order
        return None

    def get_user_open_orders(self, user_id: str) -> list[Bet]:
        return [
            o for orders in self._orders.values() for o in orders
            if o.user_id == user_id and o.is_open
        ]

    def contract_ids(self) -> list[str]:
        return list(self._orders)

    def escrow_by_user(self, contract_id: str) -> dict[str, float]:
        """Unfilled escrowed funds per maker, used as maker solvency during matching."""
        escrow: dict[str, float] = {}
        for o in self.get_all_open_orders(contract_id):
            escrow[o.user_id] = escrow.get(o.user_id, 0.0) + o.remaining_amount
        return escrow
