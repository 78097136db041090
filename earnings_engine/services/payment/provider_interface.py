# earnings_engine/services/payment/provider_interface.py
from abc import ABC, abstractmethod
from typing import Optional, Dict, Any
from dataclasses import dataclass, field
from enum import Enum
from datetime import datetime


class PaymentConfirmationStatusEnum(str, Enum):
    """Standardized status of a provider payment confirmation."""
    REQUIRES_PAYMENT_METHOD = "requires_payment_method"
    REQUIRES_ACTION = "requires_action"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    CANCELLED = "cancelled"
    FAILED = "failed"


class ConnectedAccountStatusEnum(str, Enum):
    """Payout eligibility of a connected account."""
    PENDING = "pending"
    ACTIVE = "active"
    INACTIVE = "inactive"


class WebhookEventType(str, Enum):
    """Provider webhook events the engine reacts to."""
    PAYMENT_INTENT_SUCCEEDED = "payment_intent.succeeded"
    PAYMENT_INTENT_FAILED = "payment_intent.payment_failed"
    CHARGE_REFUNDED = "charge.refunded"
    TRANSFER_CREATED = "transfer.created"
    TRANSFER_PAID = "transfer.paid"
    TRANSFER_FAILED = "transfer.failed"
    TRANSFER_REVERSED = "transfer.reversed"
    ACCOUNT_UPDATED = "account.updated"
    UNKNOWN = "unknown"


@dataclass
class PaymentConfirmation:
    """Provider-side record of a payment (a Stripe PaymentIntent)."""
    id: str
    amount: int  # In smallest currency unit (cents)
    status: PaymentConfirmationStatusEnum
    currency: str = "usd"
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class CreateTransferParams:
    """Parameters for moving funds to a creator's connected account."""
    amount: int  # In smallest currency unit (cents)
    currency: str
    destination: str  # Connected account id
    description: str
    idempotency_key: str
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass
class Transfer:
    """Provider-side record of a transfer."""
    id: str
    amount: int
    currency: str
    destination: str
    status: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None


@dataclass
class ConnectedAccountInfo:
    """Connected account as the provider reports it."""
    id: str
    status: ConnectedAccountStatusEnum
    payouts_enabled: bool = False
    details_submitted: bool = False


@dataclass
class WebhookEvent:
    """Standardized, signature-verified webhook event."""
    event_id: str
    event_type: WebhookEventType
    raw_type: str
    data: Dict[str, Any]
    created_at: datetime
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass
class HealthCheckResult:
    """Health check result."""
    healthy: bool
    latency_ms: float
    message: Optional[str] = None


class PaymentProviderInterface(ABC):
    """
    Contract the earnings engine needs from the external payment provider.
    Services depend on this interface only, so tests can substitute a fake.
    """

    @property
    @abstractmethod
    def code(self) -> str:
        """Provider code identifier (e.g., 'stripe')."""
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @abstractmethod
    async def get_payment_confirmation(self, confirmation_id: str) -> PaymentConfirmation:
        """Retrieve the provider's view of a payment before it is recorded."""
        pass

    @abstractmethod
    async def create_transfer(self, params: CreateTransferParams) -> Transfer:
        """Move funds to a connected account. Must be idempotent on idempotency_key."""
        pass

    @abstractmethod
    async def get_transfer(self, transfer_id: str) -> Transfer:
        pass

    @abstractmethod
    async def get_connected_account(self, account_id: str) -> ConnectedAccountInfo:
        pass

    @abstractmethod
    def construct_webhook_event(self, payload: bytes, signature: str) -> WebhookEvent:
        """Verify the signature and parse the event. Raises on a bad signature."""
        pass

    @abstractmethod
    async def health_check(self) -> HealthCheckResult:
        pass
