# earnings_engine/crud/crud_webhook_event.py
from typing import Optional
from datetime import datetime, timezone
from sqlalchemy.orm import Session
from sqlalchemy import and_

from earnings_engine.crud.base import CRUDBase
from earnings_engine.models.payment_webhook_event import PaymentWebhookEvent
from earnings_engine.schemas.payment import WebhookEventCreate, WebhookEventUpdate


class CRUDWebhookEvent(CRUDBase[PaymentWebhookEvent, WebhookEventCreate, WebhookEventUpdate]):
    """CRUD operations for PaymentWebhookEvent model."""

    def get_by_provider_event_id(
        self, db: Session, *, provider_code: str, provider_event_id: str
    ) -> Optional[PaymentWebhookEvent]:
        return (
            db.query(self.model)
            .filter(
                and_(
                    self.model.provider_code == provider_code,
                    self.model.provider_event_id == provider_event_id,
                )
            )
            .first()
        )

    def is_already_processed(
        self, db: Session, *, provider_code: str, provider_event_id: str
    ) -> bool:
        event = self.get_by_provider_event_id(
            db, provider_code=provider_code, provider_event_id=provider_event_id
        )
        return event is not None and event.is_processed

    def upsert_event(
        self, db: Session, *, obj_in: WebhookEventCreate
    ) -> PaymentWebhookEvent:
        """Store the delivery, refreshing the payload when the provider redelivers."""
        existing = self.get_by_provider_event_id(
            db,
            provider_code=obj_in.provider_code,
            provider_event_id=obj_in.provider_event_id,
        )
        if existing:
            existing.payload = obj_in.payload
            existing.signature_verified = obj_in.signature_verified
            existing.ip_address = obj_in.ip_address
            db.add(existing)
            db.commit()
            db.refresh(existing)
            return existing

        db_obj = PaymentWebhookEvent(
            provider_code=obj_in.provider_code,
            provider_event_id=obj_in.provider_event_id,
            provider_event_type=obj_in.provider_event_type,
            payload=obj_in.payload,
            signature_verified=obj_in.signature_verified,
            ip_address=obj_in.ip_address,
            status="pending",
        )
        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        return db_obj

    def _set_status(
        self, db: Session, event_id: str, status: str, **fields
    ) -> Optional[PaymentWebhookEvent]:
        event = self.get(db, event_id)
        if not event:
            return None
        event.status = status
        for key, value in fields.items():
            setattr(event, key, value)
        db.add(event)
        db.commit()
        db.refresh(event)
        return event

    def mark_processing(self, db: Session, *, event_id: str) -> Optional[PaymentWebhookEvent]:
        return self._set_status(db, event_id, "processing")

    def mark_processed(self, db: Session, *, event_id: str) -> Optional[PaymentWebhookEvent]:
        return self._set_status(
            db, event_id, "processed", processed_at=datetime.now(timezone.utc)
        )

    def mark_failed(
        self, db: Session, *, event_id: str, error: str
    ) -> Optional[PaymentWebhookEvent]:
        event = self.get(db, event_id)
        if not event:
            return None
        return self._set_status(
            db,
            event_id,
            "failed",
            processing_error=error,
            retry_count=(event.retry_count or 0) + 1,
        )


webhook_event = CRUDWebhookEvent(PaymentWebhookEvent)
