from dataclasses import dataclass
from typing import AsyncIterator, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt

from ..core.config import settings
from ..database import SessionLocal, get_db  # noqa: F401  (re-exported for routers)
from ..services.booking_resolver import BookingGateway
from ..services.rate_provider import RateProviderClient

# Tokens are issued elsewhere; this service only reads their claims.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)

ROLE_USER = "user"
ROLE_ADMIN = "admin"


@dataclass(frozen=True)
class Principal:
    client_id: str
    user_id: str
    email: Optional[str] = None
    role: str = ROLE_USER

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


def get_session_factory():
    """Session factory used by detached background writes."""
    return SessionLocal


def get_current_principal(token: Optional[str] = Depends(oauth2_scheme), request: Request = None) -> Principal:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    jwt_token = token or (request.cookies.get("token") if request else None)
    if not jwt_token:
        raise credentials_exception
    try:
        payload = jwt.decode(jwt_token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise credentials_exception
    client_id = payload.get("clientId")
    user_id = payload.get("userId") or payload.get("sub")
    if not client_id or not user_id:
        raise credentials_exception
    return Principal(
        client_id=str(client_id),
        user_id=str(user_id),
        email=payload.get("email"),
        role=str(payload.get("role") or ROLE_USER).lower(),
    )


def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    if not principal.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin role required")
    return principal


async def get_rate_provider() -> AsyncIterator[RateProviderClient]:
    provider = RateProviderClient()
    try:
        yield provider
    finally:
        await provider.aclose()


def get_booking_gateway() -> BookingGateway:
    return BookingGateway()
