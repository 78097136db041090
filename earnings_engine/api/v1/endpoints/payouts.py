# earnings_engine/api/v1/endpoints/payouts.py
"""
Creator-facing earnings and payout endpoints.

The creator id is always the ``sub`` claim of the caller's token; creators
can only see and move their own money.
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from earnings_engine.api import deps
from earnings_engine.core.exceptions import EarningsEngineError
from earnings_engine.schemas.payment import BalanceResponse, CreatorEarningsSummary, Transaction
from earnings_engine.schemas.payout import Payout, PayoutCreate
from earnings_engine.schemas.token import TokenPayload
from earnings_engine.services.payment.fee_tiers import CreatorFeeInfo, FeeTierEngine
from earnings_engine.services.payment.ledger import TransactionLedger
from earnings_engine.services.payment.payout_processor import PayoutProcessor
from earnings_engine.services.payment.provider_interface import PaymentProviderInterface
from earnings_engine.services.payment.providers.stripe_provider import PaymentError

router = APIRouter(tags=["Payouts"])
logger = logging.getLogger(__name__)


@router.get("/balance", response_model=BalanceResponse)
def get_balance(
    db: Session = Depends(deps.get_db),
    provider: PaymentProviderInterface = Depends(deps.get_provider),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    balance = TransactionLedger(provider).balance_of(db, current_user.sub)
    return BalanceResponse(creator_id=current_user.sub, balance=balance)


@router.get("/history", response_model=List[Payout])
def get_payout_history(
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(deps.get_db),
    provider: PaymentProviderInterface = Depends(deps.get_provider),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return PayoutProcessor(provider).get_payout_history(db, current_user.sub, limit=limit)


@router.get("/fee-info", response_model=CreatorFeeInfo)
def get_fee_info(
    db: Session = Depends(deps.get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return FeeTierEngine().get_fee_info(db, current_user.sub)


@router.get("/earnings", response_model=CreatorEarningsSummary)
def get_earnings(
    db: Session = Depends(deps.get_db),
    provider: PaymentProviderInterface = Depends(deps.get_provider),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return TransactionLedger(provider).get_creator_earnings(db, current_user.sub)


@router.get("/transactions", response_model=List[Transaction])
def get_transaction_history(
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(deps.get_db),
    provider: PaymentProviderInterface = Depends(deps.get_provider),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return TransactionLedger(provider).get_transaction_history(db, current_user.sub, limit=limit)


@router.post("/", response_model=Payout, status_code=status.HTTP_201_CREATED)
async def initiate_payout(
    payout_in: PayoutCreate,
    db: Session = Depends(deps.get_db),
    provider: PaymentProviderInterface = Depends(deps.get_provider),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """
    Pay part or all of the caller's available balance out to their
    connected account.
    """
    try:
        return await PayoutProcessor(provider).initiate(db, current_user.sub, payout_in.amount)
    except (EarningsEngineError, PaymentError) as e:
        logger.warning(f"Payout request from creator {current_user.sub} rejected: {e}")
        raise deps.http_error(e)


@router.get("/{payout_id}", response_model=Payout)
def get_payout(
    payout_id: str,
    db: Session = Depends(deps.get_db),
    provider: PaymentProviderInterface = Depends(deps.get_provider),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    try:
        return PayoutProcessor(provider).get_payout_status(
            db, payout_id, creator_id=current_user.sub
        )
    except EarningsEngineError as e:
        raise deps.http_error(e)
