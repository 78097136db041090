# tests/utils/auth.py
from jose import jwt

from earnings_engine.core.config import settings
from earnings_engine.schemas.token import TokenPayload


def get_creator_authentication_headers(creator_id: str = "creator_1") -> dict:
    """
    Generates a valid JWT and authentication headers for a test creator.
    """
    payload = TokenPayload(sub=creator_id, exp=9999999999)
    token = jwt.encode(payload.model_dump(), settings.JWT_SECRET, algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


def get_internal_headers() -> dict:
    return {"X-Internal-Api-Key": settings.INTERNAL_API_KEY}
