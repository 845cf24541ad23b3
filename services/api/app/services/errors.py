from __future__ import annotations


class PaymentsError(Exception):
    """Base class for settlement and invoicing errors."""


class DuplicateRefError(PaymentsError):
    def __init__(self, external_ref: str, draft_id: str | None = None) -> None:
        super().__init__(f"A draft already exists for external_ref={external_ref!r}")
        self.external_ref = external_ref
        self.draft_id = draft_id


class DraftNotFoundError(PaymentsError):
    def __init__(self, key: str) -> None:
        super().__init__(f"Draft not found: {key}")
        self.key = key


class OrderNotFoundError(PaymentsError):
    def __init__(self, order_id: str) -> None:
        super().__init__(f"Order not found: {order_id}")
        self.order_id = order_id


class NumberingDisabledError(PaymentsError):
    def __init__(self) -> None:
        super().__init__("Invoice numbering is disabled or not configured")


class TransactionConflictError(PaymentsError):
    def __init__(self, name: str, attempts: int) -> None:
        super().__init__(
            f"Transaction {name!r} could not commit after {attempts} attempt(s). Retry the request."
        )
        self.name = name
        self.attempts = attempts
