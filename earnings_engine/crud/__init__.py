# earnings_engine/crud/__init__.py
from .crud_transaction import transaction
from .crud_creator_fee_profile import creator_fee_profile
from .crud_connected_account import connected_account
from .crud_creator_payout import creator_payout
from .crud_failover_record import failover_record
from .crud_audit_log import audit_log
from .crud_webhook_event import webhook_event
from .crud_task_lease import task_lease
