# earnings_engine/api/v1/endpoints/webhooks.py
"""
Stripe webhook endpoint.

SECURITY NOTES:
- Every event is signature-verified before it is stored
- Events are processed idempotently by (provider, event id)
- Processing errors are stored on the event and still acknowledged with 200
"""
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from earnings_engine import crud
from earnings_engine.api import deps
from earnings_engine.schemas.payment import WebhookEventCreate
from earnings_engine.services.payment.ledger import TransactionLedger
from earnings_engine.services.payment.payout_processor import PayoutProcessor
from earnings_engine.services.payment.provider_interface import (
    PaymentProviderInterface,
    WebhookEvent,
    WebhookEventType,
)
from earnings_engine.services.payment.providers.stripe_provider import PaymentError

logger = logging.getLogger(__name__)

router = APIRouter()

TRANSFER_EVENTS = (
    WebhookEventType.TRANSFER_CREATED,
    WebhookEventType.TRANSFER_PAID,
    WebhookEventType.TRANSFER_FAILED,
    WebhookEventType.TRANSFER_REVERSED,
)


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(None, alias="Stripe-Signature"),
    db: Session = Depends(deps.get_db),
    provider: PaymentProviderInterface = Depends(deps.get_provider),
):
    """
    Handle Stripe webhook events.

    1. Verifies the signature and parses the event
    2. Skips events that were already processed
    3. Stores the event, then dispatches it by type
    4. Returns 200 so Stripe stops redelivering
    """
    body = await request.body()

    if not stripe_signature:
        logger.warning("Webhook received without Stripe-Signature header")
        raise HTTPException(status_code=400, detail="Missing signature")

    client_ip = request.client.host if request.client else None

    try:
        event = provider.construct_webhook_event(body, stripe_signature)
    except PaymentError as e:
        logger.warning(f"Rejected webhook from {client_ip}: {e.code}")
        raise HTTPException(status_code=400, detail=e.message)

    if crud.webhook_event.is_already_processed(
        db, provider_code=provider.code, provider_event_id=event.event_id
    ):
        logger.info(f"Event {event.event_id} already processed, skipping")
        return {"status": "already_processed"}

    webhook_event = crud.webhook_event.upsert_event(
        db,
        obj_in=WebhookEventCreate(
            provider_code=provider.code,
            provider_event_id=event.event_id,
            provider_event_type=event.raw_type,
            payload=event.payload,
            signature_verified=True,
            ip_address=client_ip,
        ),
    )
    crud.webhook_event.mark_processing(db, event_id=webhook_event.id)

    try:
        await _process_stripe_event(db, provider, event)
    except Exception as e:
        logger.error(f"Error processing webhook event {event.event_id}: {e}", exc_info=True)
        db.rollback()
        crud.webhook_event.mark_failed(db, event_id=webhook_event.id, error=str(e))
        return {"status": "processing_error", "event_id": event.event_id}

    crud.webhook_event.mark_processed(db, event_id=webhook_event.id)
    return {"status": "processed", "event_id": event.event_id}


async def _process_stripe_event(
    db: Session, provider: PaymentProviderInterface, event: WebhookEvent
) -> None:
    if event.event_type == WebhookEventType.PAYMENT_INTENT_SUCCEEDED:
        await TransactionLedger(provider).handle_payment_succeeded(db, event.data)

    elif event.event_type == WebhookEventType.PAYMENT_INTENT_FAILED:
        error = (event.data.get("last_payment_error") or {}).get("message")
        logger.warning(f"Payment {event.data.get('id')} failed: {error or 'unknown error'}")

    elif event.event_type == WebhookEventType.CHARGE_REFUNDED:
        # Refunds are not reversed in the ledger; operators reconcile them by hand
        logger.info(
            f"Charge {event.data.get('id')} refunded "
            f"({event.data.get('amount_refunded')} of {event.data.get('amount')})"
        )

    elif event.event_type in TRANSFER_EVENTS:
        await PayoutProcessor(provider).handle_transfer_event(
            db, event.event_type.value, event.data
        )

    elif event.event_type == WebhookEventType.ACCOUNT_UPDATED:
        await PayoutProcessor(provider).handle_account_updated(db, event.data)

    else:
        logger.info(f"Unhandled event type: {event.raw_type}")
