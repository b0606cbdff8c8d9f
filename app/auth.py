"""
Identity: bearer JWTs are issued by the auth service; the chat API verifies them and
uses the `sub` claim as the owner id. create_access_token exists for local tooling and tests.
"""
from datetime import datetime, timedelta
from jose import JWTError, jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from app.config import get_settings
from app.schemas.user import TokenPayload

security = HTTPBearer(auto_error=False)

ACCESS_TOKEN_TYPE = "access"


def create_access_token(user_id: str, email: str = "") -> str:
    settings = get_settings()
    claims = {
        "sub": user_id,
        "email": email,
        "exp": datetime.utcnow() + timedelta(minutes=settings.access_token_expire_minutes),
        "type": ACCESS_TOKEN_TYPE,
    }
    return jwt.encode(claims, settings.secret_key, algorithm=settings.algorithm)


def decode_token(token: str) -> TokenPayload | None:
    """Verified access-token claims, or None for bad signature, expiry, wrong type or no subject."""
    settings = get_settings()
    try:
        claims = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None
    if claims.get("type", ACCESS_TOKEN_TYPE) != ACCESS_TOKEN_TYPE or not claims.get("sub") or "exp" not in claims:
        return None
    return TokenPayload(sub=claims["sub"], email=claims.get("email") or "", exp=claims["exp"])


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> str:
    """Owner id of the request; 401 without a valid bearer token."""
    if not credentials:
        raise _unauthorized("Not authenticated")
    payload = decode_token(credentials.credentials)
    if payload is None:
        raise _unauthorized("Invalid or expired token")
    return payload.sub
