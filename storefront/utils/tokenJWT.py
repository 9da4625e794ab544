# storefront/utils/tokenJWT.py
from jose import jwt, JWTError
from datetime import datetime, timedelta, timezone
from typing import Optional
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from storefront.config import settings
from storefront.database import get_db
from storefront.models.users import User
from storefront.schemas.user import Identity
from storefront.utils.roles import normalize_role

# Authorization scheme; anonymous callers are guests, not errors
bearer_scheme = HTTPBearer(auto_error=False)

def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

# Generate a new JWT access token (development and tests; production tokens come from the auth backend)
def create_access_token(data: dict, expires_delta: timedelta = None):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

# Decode a bearer token into an identity; the profile's role wins over the token claim
def decode_identity(token: str, db: Optional[Session] = None) -> Identity:
    try:
        payload = jwt.decode(
            token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM], options={"verify_aud": False}
        )
    except JWTError:
        raise _credentials_exception()

    user_id: str = payload.get("sub")
    # Ensure the subject is present in the token payload
    if not user_id:
        raise _credentials_exception()

    role = payload.get("role")
    email = payload.get("email")
    if db is not None:
        profile = db.query(User).filter(User.id == user_id).first()
        if profile is not None:
            role = profile.role
            email = email or profile.email

    return Identity(
        user_id=user_id,
        email=email,
        role=normalize_role(role),
        email_verified=bool(payload.get("email_verified") or payload.get("email_confirmed_at")),
    )

# Identity of the caller, or None for guests
def get_optional_identity(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> Optional[Identity]:
    if credentials is None:
        request.state.access_token = None
        return None
    identity = decode_identity(credentials.credentials, db)
    request.state.access_token = credentials.credentials
    return identity

# Identity of the caller; guests are rejected
def get_current_identity(identity: Optional[Identity] = Depends(get_optional_identity)) -> Identity:
    if identity is None:
        raise _credentials_exception()
    return identity

# Dependency factory for Role-Based Access Control
def role_required(*allowed_roles):
    def _checker(identity: Identity = Depends(get_current_identity)):
        if allowed_roles and identity.role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Forbidden"
            )
        return identity
    return _checker
