"""Unified error codes and custom exceptions.

Error code ranges:
  2xxx: Account
  3xxx: Market / Answer
  4xxx: Order / Trade
  5xxx: Position
  9xxx: System
"""


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        super().__init__(message)


# --- 2xxx: Account ---

class InsufficientBalanceError(AppError):
    def __init__(self, required: float, available: float) -> None:
        super().__init__(
            2001,
            f"Insufficient balance: required {required:.2f}, available {available:.2f}",
            422,
        )


# --- 3xxx: Market ---

class ContractNotFoundError(AppError):
    def __init__(self, contract_id: str) -> None:
        super().__init__(3001, f"Contract not found: {contract_id}", 404)


class MarketResolvedError(AppError):
    def __init__(self, contract_id: str) -> None:
        super().__init__(3002, f"Market already resolved: {contract_id}", 422)


class AnswerNotFoundError(AppError):
    def __init__(self, answer_id: str) -> None:
        super().__init__(3003, f"Answer not found: {answer_id}", 404)


# --- 4xxx: Order ---

class ValidationError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(4001, detail, 422)


class OrderNotFoundError(AppError):
    def __init__(self, order_id: str) -> None:
        super().__init__(4004, f"Order not found: {order_id}", 404)


class PoolDrainRejectedError(AppError):
    def __init__(self) -> None:
        super().__init__(4007, "Sale would drain pool", 422)


class UnauthorizedError(AppError):
    def __init__(self, order_id: str) -> None:
        super().__init__(4008, f"Order {order_id} is not owned by requesting user", 403)


class AlreadyFilledError(AppError):
    def __init__(self, order_id: str) -> None:
        super().__init__(4009, f"Order already filled: {order_id}", 422)


class AlreadyCancelledError(AppError):
    def __init__(self, order_id: str) -> None:
        super().__init__(4010, f"Order already cancelled: {order_id}", 422)


# --- 5xxx: Position ---

class InsufficientSharesError(AppError):
    def __init__(self, requested: float, held: float) -> None:
        super().__init__(
            5001,
            f"Insufficient shares: requested {requested:.4f}, held {held:.4f}",
            422,
        )


# --- 9xxx: System ---

class InternalError(AppError):
    """Programming-invariant violation. Never converted to a user-facing result."""

    def __init__(self, detail: str = "Internal server error") -> None:
        super().__init__(9002, detail, 500)
