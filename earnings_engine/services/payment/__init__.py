# earnings_engine/services/payment/__init__.py
from .provider_interface import PaymentProviderInterface
from .provider_factory import PaymentProviderFactory, get_payment_provider
from .ledger import TransactionLedger
from .payout_processor import PayoutProcessor
from .fee_tiers import FeeTierEngine
from .reconciliation import ReconciliationService

__all__ = [
    "PaymentProviderInterface",
    "PaymentProviderFactory",
    "get_payment_provider",
    "TransactionLedger",
    "PayoutProcessor",
    "FeeTierEngine",
    "ReconciliationService",
]
