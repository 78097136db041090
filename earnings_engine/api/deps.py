# earnings_engine/api/deps.py
from typing import Generator

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import APIKeyHeader, OAuth2PasswordBearer
from jose import JWTError, jwt

from earnings_engine.core.config import settings
from earnings_engine.core.exceptions import (
    EarningsEngineError,
    NotFoundError,
    PayoutFailedError,
    PreconditionError,
    UnknownCategoryError,
    VerificationError,
)
from earnings_engine.db.session import SessionLocal
from earnings_engine.schemas.token import TokenPayload
from earnings_engine.services.payment.provider_factory import get_payment_provider
from earnings_engine.services.payment.provider_interface import PaymentProviderInterface
from earnings_engine.services.payment.providers.stripe_provider import PaymentError


def get_db() -> Generator:
    """Dependency to get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# tokenUrl is only used by the OpenAPI docs; tokens are issued elsewhere.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token")


def get_current_user(token: str = Depends(oauth2_scheme)) -> TokenPayload:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=["HS256"])
        token_data = TokenPayload(**payload)
    except (JWTError, ValueError):
        raise credentials_exception

    return token_data


api_key_header = APIKeyHeader(name="X-Internal-Api-Key", auto_error=False)


def get_internal_api_key(api_key: str = Security(api_key_header)) -> str:
    """
    Checks for and validates the internal API key from the request header.
    """
    if settings.INTERNAL_API_KEY and api_key == settings.INTERNAL_API_KEY:
        return api_key
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or missing Internal API Key",
    )


def get_provider() -> PaymentProviderInterface:
    return get_payment_provider()


def http_error(exc: Exception) -> HTTPException:
    """Translate an engine or provider error into the HTTP response for the caller."""
    if isinstance(exc, (PreconditionError, UnknownCategoryError)):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message)
    if isinstance(exc, VerificationError):
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=exc.message)
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.message)
    if isinstance(exc, PayoutFailedError):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.message)
    if isinstance(exc, PaymentError):
        # Raw provider errors stay in the logs
        return HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Payment provider unavailable, please try again later",
        )
    if isinstance(exc, EarningsEngineError):
        return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=exc.message)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal error")
