"""
Customer service - guest registry of a tenant
Stay aggregates are maintained by checkout, not here.
"""
from typing import List, Optional
from sqlalchemy import desc, or_
from sqlalchemy.orm import Session

from frontdesk.errors import NotFound
from frontdesk.models.ontology import Customer
from frontdesk.models.schemas import CustomerCreate


class CustomerService:
    """Customer service"""

    def __init__(self, db: Session):
        self.db = db

    def get_customers(self, operator_id: int, search: Optional[str] = None,
                      limit: int = 100) -> List[Customer]:
        query = self.db.query(Customer).filter(Customer.operator_id == operator_id)

        if search:
            search_pattern = f"%{search}%"
            query = query.filter(
                or_(
                    Customer.full_name.ilike(search_pattern),
                    Customer.phone.like(search_pattern),
                    Customer.document_number.like(search_pattern)
                )
            )

        return query.order_by(desc(Customer.created_at)).limit(limit).all()

    def get_customer(self, operator_id: int, customer_id: int) -> Customer:
        customer = self.db.query(Customer).filter(
            Customer.id == customer_id,
            Customer.operator_id == operator_id
        ).first()
        if not customer:
            raise NotFound("Customer not found", {"customer_id": customer_id})
        return customer

    def create_customer(self, operator_id: int, data: CustomerCreate) -> Customer:
        customer = Customer(operator_id=operator_id, **data.model_dump())
        self.db.add(customer)
        self.db.commit()
        self.db.refresh(customer)
        return customer
