# earnings_engine/services/payment/providers/stripe_provider.py
import stripe
import time
import logging
from typing import Dict, Any
from datetime import datetime, timezone
from dataclasses import dataclass

from ..provider_interface import (
    PaymentProviderInterface,
    PaymentConfirmation,
    PaymentConfirmationStatusEnum,
    CreateTransferParams,
    Transfer,
    ConnectedAccountInfo,
    ConnectedAccountStatusEnum,
    WebhookEvent,
    WebhookEventType,
    HealthCheckResult,
)

logger = logging.getLogger(__name__)


@dataclass
class StripeConfig:
    """Configuration for Stripe provider."""
    secret_key: str
    webhook_secret: str
    api_version: str = "2023-10-16"
    max_retries: int = 2


# Mapping from Stripe payment intent status to our standardized status
STRIPE_STATUS_MAP: Dict[str, PaymentConfirmationStatusEnum] = {
    "requires_payment_method": PaymentConfirmationStatusEnum.REQUIRES_PAYMENT_METHOD,
    "requires_confirmation": PaymentConfirmationStatusEnum.REQUIRES_ACTION,
    "requires_action": PaymentConfirmationStatusEnum.REQUIRES_ACTION,
    "processing": PaymentConfirmationStatusEnum.PROCESSING,
    "requires_capture": PaymentConfirmationStatusEnum.PROCESSING,
    "succeeded": PaymentConfirmationStatusEnum.SUCCEEDED,
    "canceled": PaymentConfirmationStatusEnum.CANCELLED,
}

# Mapping from Stripe event types to our standardized event types
STRIPE_EVENT_MAP: Dict[str, WebhookEventType] = {
    "payment_intent.succeeded": WebhookEventType.PAYMENT_INTENT_SUCCEEDED,
    "payment_intent.payment_failed": WebhookEventType.PAYMENT_INTENT_FAILED,
    "charge.refunded": WebhookEventType.CHARGE_REFUNDED,
    "transfer.created": WebhookEventType.TRANSFER_CREATED,
    "transfer.paid": WebhookEventType.TRANSFER_PAID,
    "transfer.failed": WebhookEventType.TRANSFER_FAILED,
    "transfer.reversed": WebhookEventType.TRANSFER_REVERSED,
    "account.updated": WebhookEventType.ACCOUNT_UPDATED,
}


def account_status_from_flags(
    payouts_enabled: bool, details_submitted: bool
) -> ConnectedAccountStatusEnum:
    """Payout-enabled accounts are active; onboarded but disabled ones are inactive."""
    if payouts_enabled:
        return ConnectedAccountStatusEnum.ACTIVE
    if details_submitted:
        return ConnectedAccountStatusEnum.INACTIVE
    return ConnectedAccountStatusEnum.PENDING


class StripeProvider(PaymentProviderInterface):
    """
    Stripe implementation of PaymentProviderInterface.

    SECURITY NOTES:
    - Always verify webhook signatures
    - Use idempotency keys for all transfers
    - Handle rate limiting gracefully
    """

    def __init__(self, config: StripeConfig):
        self._config = config

        # Initialize Stripe with locked API version
        stripe.api_key = config.secret_key
        stripe.api_version = config.api_version
        stripe.max_network_retries = config.max_retries

    @property
    def code(self) -> str:
        return "stripe"

    @property
    def name(self) -> str:
        return "Stripe"

    async def get_payment_confirmation(self, confirmation_id: str) -> PaymentConfirmation:
        """Retrieve a PaymentIntent for ledger verification."""
        try:
            intent = stripe.PaymentIntent.retrieve(confirmation_id)
        except stripe.error.InvalidRequestError as e:
            logger.error(f"Payment intent {confirmation_id} not found: {e}")
            raise PaymentError(
                code="CONFIRMATION_NOT_FOUND",
                message=f"Payment confirmation {confirmation_id} not found",
                retryable=False,
            )
        except stripe.error.StripeError as e:
            logger.error(f"Error retrieving payment intent {confirmation_id}: {e}")
            raise PaymentError(
                code="PROVIDER_ERROR",
                message="Could not retrieve payment status",
                retryable=True,
            )

        return PaymentConfirmation(
            id=intent.id,
            amount=intent.amount,
            status=STRIPE_STATUS_MAP.get(
                intent.status, PaymentConfirmationStatusEnum.FAILED
            ),
            currency=intent.currency,
            metadata=dict(intent.metadata or {}),
        )

    async def create_transfer(self, params: CreateTransferParams) -> Transfer:
        """Create a transfer to a connected account, keyed for safe retries."""
        try:
            transfer = stripe.Transfer.create(
                amount=params.amount,
                currency=params.currency.lower(),
                destination=params.destination,
                description=params.description,
                metadata=params.metadata,
                idempotency_key=params.idempotency_key,
            )
        except stripe.error.RateLimitError as e:
            logger.error(f"Rate limit error creating transfer: {e}")
            raise PaymentError(
                code="RATE_LIMIT",
                message="Too many requests. Please try again.",
                retryable=True,
            )
        except stripe.error.InvalidRequestError as e:
            logger.error(f"Invalid transfer request to {params.destination}: {e}")
            raise PaymentError(
                code="INVALID_REQUEST",
                message=str(e),
                retryable=False,
            )
        except stripe.error.StripeError as e:
            logger.error(f"Stripe error creating transfer to {params.destination}: {e}")
            raise PaymentError(
                code="PROVIDER_ERROR",
                message="Payout service temporarily unavailable",
                retryable=True,
            )

        return self._to_transfer(transfer)

    async def get_transfer(self, transfer_id: str) -> Transfer:
        try:
            transfer = stripe.Transfer.retrieve(transfer_id)
        except stripe.error.StripeError as e:
            logger.error(f"Error retrieving transfer {transfer_id}: {e}")
            raise PaymentError(
                code="PROVIDER_ERROR",
                message=f"Could not retrieve transfer {transfer_id}",
                retryable=True,
            )
        return self._to_transfer(transfer)

    async def get_connected_account(self, account_id: str) -> ConnectedAccountInfo:
        try:
            account = stripe.Account.retrieve(account_id)
        except stripe.error.StripeError as e:
            logger.error(f"Error retrieving connected account {account_id}: {e}")
            raise PaymentError(
                code="PROVIDER_ERROR",
                message="Could not retrieve connected account",
                retryable=True,
            )

        payouts_enabled = bool(account.payouts_enabled)
        details_submitted = bool(account.details_submitted)
        return ConnectedAccountInfo(
            id=account.id,
            status=account_status_from_flags(payouts_enabled, details_submitted),
            payouts_enabled=payouts_enabled,
            details_submitted=details_submitted,
        )

    def construct_webhook_event(self, payload: bytes, signature: str) -> WebhookEvent:
        """Verify the Stripe-Signature header and parse the event."""
        try:
            event = stripe.Webhook.construct_event(
                payload,
                signature,
                self._config.webhook_secret,
            )
        except stripe.error.SignatureVerificationError:
            raise PaymentError(
                code="INVALID_SIGNATURE",
                message="Invalid webhook signature",
                retryable=False,
            )
        except ValueError:
            raise PaymentError(
                code="PARSE_ERROR",
                message="Invalid webhook payload",
                retryable=False,
            )

        event_dict: Dict[str, Any] = event.to_dict()
        data = dict(event_dict.get("data", {}).get("object", {}) or {})
        if event_dict.get("account") and "account" not in data:
            data["account"] = event_dict["account"]

        return WebhookEvent(
            event_id=event.id,
            event_type=STRIPE_EVENT_MAP.get(event.type, WebhookEventType.UNKNOWN),
            raw_type=event.type,
            data=data,
            created_at=datetime.fromtimestamp(event.created, tz=timezone.utc),
            payload=event_dict,
        )

    async def health_check(self) -> HealthCheckResult:
        try:
            start_time = time.time()
            stripe.Balance.retrieve()
            latency_ms = (time.time() - start_time) * 1000

            return HealthCheckResult(
                healthy=True,
                latency_ms=latency_ms,
                message="Stripe API is healthy",
            )
        except stripe.error.AuthenticationError:
            return HealthCheckResult(
                healthy=False,
                latency_ms=0,
                message="Invalid Stripe API key",
            )
        except stripe.error.StripeError as e:
            return HealthCheckResult(
                healthy=False,
                latency_ms=0,
                message=f"Stripe API error: {str(e)}",
            )

    @staticmethod
    def _to_transfer(transfer: Any) -> Transfer:
        created = getattr(transfer, "created", None)
        return Transfer(
            id=transfer.id,
            amount=transfer.amount,
            currency=transfer.currency,
            destination=transfer.destination,
            status="reversed" if getattr(transfer, "reversed", False) else "created",
            metadata=dict(transfer.metadata or {}),
            created_at=(
                datetime.fromtimestamp(created, tz=timezone.utc) if created else None
            ),
        )


class PaymentError(Exception):
    """Provider call failed. ``retryable`` marks transient failures."""

    def __init__(self, code: str, message: str, retryable: bool = False):
        self.code = code
        self.message = message
        self.retryable = retryable
        super().__init__(message)
