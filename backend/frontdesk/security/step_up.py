"""
Step-up authorization

A cashier about to apply a large discount or a refund asks the operator to type the
operator password. That credential is verified here, once, and exchanged for a
short-lived token bound to the tenant. Ledger operations only ever see the token.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, UTC
from typing import Optional
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy.orm import Session

from frontdesk.config import settings
from frontdesk.errors import AuthorizationRequired, StepUpInvalid
from frontdesk.models.ontology import User, UserRole
from frontdesk.security.auth import verify_password

logger = logging.getLogger(__name__)

STEP_UP_TOKEN_TYPE = "step_up"


@dataclass
class StepUpGrant:
    """An issued step-up token"""
    token: str
    authorizer_id: int
    expires_at: datetime


def _find_operator_principal(db: Session, operator_id: int) -> Optional[User]:
    return db.query(User).filter(
        User.operator_id == operator_id,
        User.role == UserRole.OPERATOR,
        User.is_active == True  # noqa: E712
    ).first()


def issue_step_up_token(db: Session, operator_id: int, password: str,
                        requested_by: Optional[int] = None) -> StepUpGrant:
    """
    Verify the operator credential and issue a step-up token.

    Args:
        db: database session
        operator_id: tenant of the requesting actor
        password: the operator's password, typed by the operator at the desk
        requested_by: actor asking for the step-up (for the audit log)

    Raises:
        StepUpInvalid: no active operator principal, or wrong password
    """
    principal = _find_operator_principal(db, operator_id)
    if principal is None or not verify_password(password, principal.password_hash):
        logger.warning(
            f"Step-up authorization refused for operator {operator_id} "
            f"(requested by {requested_by})"
        )
        raise StepUpInvalid("Operator password is incorrect")

    expires_at = datetime.now(UTC) + timedelta(minutes=settings.STEP_UP_TOKEN_EXPIRE_MINUTES)
    claims = {
        "sub": str(principal.id),
        "op": operator_id,
        "typ": STEP_UP_TOKEN_TYPE,
        "jti": uuid.uuid4().hex,
        "exp": expires_at,
    }
    if requested_by is not None:
        claims["req"] = requested_by
    token = jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

    logger.info(f"Step-up authorization granted by user {principal.id} for operator {operator_id}")
    return StepUpGrant(token=token, authorizer_id=principal.id, expires_at=expires_at)


def verify_step_up_token(token: Optional[str], operator_id: int,
                         db: Optional[Session] = None) -> int:
    """
    Validate a step-up token for the given tenant.

    With a session, the authorizer must still be an active operator principal of the
    tenant, so deactivating the owner revokes outstanding tokens at once.

    Returns:
        id of the operator principal who authorized the operation

    Raises:
        AuthorizationRequired: no token supplied
        StepUpInvalid: malformed, expired, wrong type, another tenant's token or a
            deactivated authorizer
    """
    if not token:
        raise AuthorizationRequired(
            "This operation requires operator authorization",
            {"requires_step_up": True}
        )
    try:
        claims = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except ExpiredSignatureError:
        raise StepUpInvalid("Operator authorization has expired", {"requires_step_up": True})
    except JWTError:
        raise StepUpInvalid("Operator authorization is invalid", {"requires_step_up": True})

    if claims.get("typ") != STEP_UP_TOKEN_TYPE or claims.get("op") != operator_id:
        raise StepUpInvalid("Operator authorization is invalid", {"requires_step_up": True})

    authorizer_id = int(claims["sub"])
    if db is not None:
        principal = db.get(User, authorizer_id)
        if (principal is None or not principal.is_active
                or principal.role != UserRole.OPERATOR or principal.operator_id != operator_id):
            logger.warning(f"Step-up token of inactive authorizer {authorizer_id} refused")
            raise StepUpInvalid("Operator authorization was revoked", {"requires_step_up": True})
    return authorizer_id
