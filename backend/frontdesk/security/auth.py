"""
Authentication boundary

Decodes the bearer token issued by the external login service and resolves the
principal into an ActorContext exactly once per request. The tenant (operator_id)
always comes from the stored principal, never from request input.
"""
import bcrypt
import logging
from datetime import datetime, timedelta, UTC
from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from frontdesk.config import settings
from frontdesk.database import get_db
from frontdesk.models.ontology import User, UserRole
from frontdesk.security.authorization import ActorContext, Capabilities

logger = logging.getLogger(__name__)

ACCESS_TOKEN_TYPE = "access"

security = HTTPBearer()


def get_password_hash(password: str) -> str:
    """Hash a password"""
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash"""
    if not plain_password or not hashed_password:
        return False
    return bcrypt.checkpw(plain_password.encode('utf-8'), hashed_password.encode('utf-8'))


def create_access_token(user_id: int, role: UserRole, operator_id: int,
                        expires_minutes: Optional[int] = None) -> str:
    """Create an access JWT for a principal"""
    expire = datetime.now(UTC) + timedelta(
        minutes=expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES
    )
    to_encode = {
        "sub": str(user_id),
        "role": role.value if isinstance(role, UserRole) else str(role),
        "op": operator_id,
        "typ": ACCESS_TOKEN_TYPE,
        "exp": expire,
    }
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_token(token: str) -> dict:
    """Decode an access JWT"""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials"
        )
    if payload.get("typ") != ACCESS_TOKEN_TYPE:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials"
        )
    return payload


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    """Resolve the logged-in principal"""
    payload = decode_token(credentials.credentials)

    user = db.query(User).filter(User.id == int(payload.get("sub"))).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found"
        )

    if not user.is_active or (user.operator is not None and not user.operator.is_active):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account disabled"
        )

    return user


def build_actor_context(user: User) -> ActorContext:
    return ActorContext(
        operator_id=user.operator_id,
        actor_id=user.id,
        actor_role=user.role,
        capabilities=Capabilities.for_user(user),
    )


async def get_actor_context(current_user: User = Depends(get_current_user)) -> ActorContext:
    """Cashier or operator acting at the front desk"""
    return build_actor_context(current_user)


async def require_operator(current_user: User = Depends(get_current_user)) -> ActorContext:
    """Operator-only routes"""
    if current_user.role != UserRole.OPERATOR:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Operator access required"
        )
    return build_actor_context(current_user)
