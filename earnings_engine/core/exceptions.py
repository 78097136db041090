# earnings_engine/core/exceptions.py
"""
Domain errors raised by the earnings engine.

Every error carries a stable machine-readable ``code`` and a message that is
safe to show to the caller. Provider (Stripe) failures are not part of this
hierarchy; they surface as ``PaymentError`` from the provider layer.
"""
from typing import Any, Dict, Optional


class EarningsEngineError(Exception):
    """Base class for all engine errors."""

    def __init__(
        self,
        code: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.code = code
        self.message = message
        self.context = context or {}
        super().__init__(message)


class ConfigurationError(EarningsEngineError):
    """Required configuration is missing. Fatal at startup."""


class UnknownCategoryError(EarningsEngineError):
    """A revenue category outside the known split table."""

    def __init__(self, category: str):
        super().__init__(
            code="UNKNOWN_CATEGORY",
            message=f"Unknown revenue category: {category}",
            context={"category": category},
        )


class VerificationError(EarningsEngineError):
    """The provider confirmation does not match the payment being recorded."""


class PreconditionError(EarningsEngineError):
    """A client-correctable condition blocks the operation."""


class AccountNotConnectedError(PreconditionError):
    def __init__(self, creator_id: str):
        super().__init__(
            code="ACCOUNT_NOT_CONNECTED",
            message="Creator must connect a payout account first",
            context={"creator_id": creator_id},
        )


class AccountInactiveError(PreconditionError):
    def __init__(self, creator_id: str, status: str):
        super().__init__(
            code="ACCOUNT_INACTIVE",
            message="Creator's payout account is not active",
            context={"creator_id": creator_id, "status": status},
        )


class InsufficientBalanceError(PreconditionError):
    def __init__(self, creator_id: str, requested: int, available: int):
        super().__init__(
            code="INSUFFICIENT_BALANCE",
            message=f"Insufficient balance. Available: {available // 100}.{available % 100:02d}",
            context={
                "creator_id": creator_id,
                "requested": requested,
                "available": available,
            },
        )


class InvalidAmountError(PreconditionError):
    def __init__(self, amount: int):
        super().__init__(
            code="INVALID_AMOUNT",
            message="Amount must be a positive integer number of minor units",
            context={"amount": amount},
        )


class PayoutRetryPendingError(PreconditionError):
    def __init__(self, creator_id: str, failover_record_id: str):
        super().__init__(
            code="PAYOUT_RETRY_PENDING",
            message="A previous payout is still being retried",
            context={"creator_id": creator_id, "failover_record_id": failover_record_id},
        )


class NotFoundError(EarningsEngineError):
    """A referenced record does not exist."""


class PayoutFailedError(EarningsEngineError):
    """
    The provider rejected or could not complete a transfer. No payout row
    exists; a failover record holds the retry.
    """

    def __init__(
        self,
        creator_id: str,
        provider_code: str,
        failover_record_id: Optional[str] = None,
        retryable: bool = True,
    ):
        super().__init__(
            code="PAYOUT_FAILED",
            message="Payout could not be completed right now and has been queued for retry",
            context={
                "creator_id": creator_id,
                "provider_code": provider_code,
                "failover_record_id": failover_record_id,
            },
        )
        self.failover_record_id = failover_record_id
        self.retryable = retryable
