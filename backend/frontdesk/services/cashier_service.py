"""
Cashier service - front-desk accounts and their capability records
Managed by the operator; credentials are hashed with bcrypt.
"""
import logging
from typing import List
from sqlalchemy.orm import Session

from frontdesk.errors import NotFound, ValidationError
from frontdesk.models.ontology import CashierPermission, User, UserRole
from frontdesk.models.schemas import CashierCreate, CashierPermissions
from frontdesk.security.auth import get_password_hash

logger = logging.getLogger(__name__)


class CashierService:
    """Cashier accounts"""

    def __init__(self, db: Session):
        self.db = db

    def get_cashiers(self, operator_id: int) -> List[User]:
        return self.db.query(User).filter(
            User.operator_id == operator_id,
            User.role == UserRole.CASHIER
        ).order_by(User.full_name).all()

    def get_cashier(self, operator_id: int, cashier_id: int) -> User:
        cashier = self.db.query(User).filter(
            User.id == cashier_id,
            User.operator_id == operator_id,
            User.role == UserRole.CASHIER
        ).first()
        if not cashier:
            raise NotFound("Cashier not found", {"cashier_id": cashier_id})
        return cashier

    def create_cashier(self, operator_id: int, data: CashierCreate) -> User:
        existing = self.db.query(User).filter(
            User.operator_id == operator_id,
            User.username == data.username
        ).first()
        if existing:
            raise ValidationError(
                f"Username {data.username} already exists", {"username": data.username}
            )

        cashier = User(
            operator_id=operator_id,
            username=data.username,
            password_hash=get_password_hash(data.password),
            full_name=data.full_name,
            phone=data.phone,
            email=data.email,
            role=UserRole.CASHIER,
            is_active=True,
        )
        cashier.permission = CashierPermission(**data.permissions.model_dump())
        self.db.add(cashier)
        self.db.commit()
        self.db.refresh(cashier)
        logger.info(f"Cashier {cashier.username} created for operator {operator_id}")
        return cashier

    def update_permissions(self, operator_id: int, cashier_id: int,
                           data: CashierPermissions) -> User:
        cashier = self.get_cashier(operator_id, cashier_id)
        if cashier.permission is None:
            cashier.permission = CashierPermission(**data.model_dump())
        else:
            for key, value in data.model_dump().items():
                setattr(cashier.permission, key, value)
        self.db.commit()
        self.db.refresh(cashier)
        logger.info(f"Permissions of cashier {cashier.username} updated")
        return cashier

    def set_active(self, operator_id: int, cashier_id: int, is_active: bool) -> User:
        cashier = self.get_cashier(operator_id, cashier_id)
        cashier.is_active = is_active
        self.db.commit()
        self.db.refresh(cashier)
        return cashier
