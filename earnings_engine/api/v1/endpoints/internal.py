# earnings_engine/api/v1/endpoints/internal.py
import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from earnings_engine.api import deps
from earnings_engine.core.exceptions import EarningsEngineError
from earnings_engine.schemas.payment import ConfirmedPaymentCreate, Transaction
from earnings_engine.services.payment.ledger import TransactionLedger
from earnings_engine.services.payment.provider_interface import PaymentProviderInterface
from earnings_engine.services.payment.providers.stripe_provider import PaymentError

router = APIRouter(tags=["Internal"])
logger = logging.getLogger(__name__)


@router.post(
    "/internal/payments/confirmed",
    response_model=Transaction,
    status_code=status.HTTP_201_CREATED,
)
async def record_confirmed_payment(
    payment_in: ConfirmedPaymentCreate,
    db: Session = Depends(deps.get_db),
    provider: PaymentProviderInterface = Depends(deps.get_provider),
    api_key: str = Depends(deps.get_internal_api_key),
):
    """
    Record a payment the surrounding application has already taken. The
    confirmation is re-checked with the provider before anything is written;
    repeating a confirmation id returns the original transaction.
    """
    try:
        return await TransactionLedger(provider).record(
            db,
            payer_id=payment_in.payer_id,
            creator_id=payment_in.creator_id,
            amount=payment_in.amount,
            category=payment_in.category,
            provider_confirmation_id=payment_in.provider_confirmation_id,
            description=payment_in.description,
        )
    except (EarningsEngineError, PaymentError) as e:
        logger.warning(
            f"Confirmed payment {payment_in.provider_confirmation_id} rejected: {e}"
        )
        raise deps.http_error(e)
