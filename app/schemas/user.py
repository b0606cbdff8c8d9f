from pydantic import BaseModel


class TokenPayload(BaseModel):
    sub: str  # user id
    email: str = ""
    exp: int
    type: str = "access"
