# earnings_engine/models/__init__.py
# Import all models so Base.metadata knows every table

from earnings_engine.db.base_class import Base
from earnings_engine.models.transaction import Transaction
from earnings_engine.models.creator_fee_profile import CreatorFeeProfile
from earnings_engine.models.connected_account import ConnectedAccount
from earnings_engine.models.creator_payout import CreatorPayout
from earnings_engine.models.failover_record import FailoverRecord
from earnings_engine.models.payment_audit_log import PaymentAuditLog
from earnings_engine.models.payment_webhook_event import PaymentWebhookEvent
from earnings_engine.models.scheduled_task_lease import ScheduledTaskLease
