# earnings_engine/schemas/token.py
from pydantic import BaseModel


class TokenPayload(BaseModel):
    sub: str  # creator id of the caller
    exp: int

    model_config = {"from_attributes": True}
