"""
Catalog service - POS products sold to guests
"""
import logging
from typing import List, Optional
from sqlalchemy.orm import Session

from frontdesk.models.ontology import Product, ProductCategory
from frontdesk.models.schemas import ProductCreate

logger = logging.getLogger(__name__)


class CatalogService:
    """POS catalog"""

    def __init__(self, db: Session):
        self.db = db

    def get_products(self, operator_id: int, category: Optional[ProductCategory] = None,
                     include_inactive: bool = False) -> List[Product]:
        query = self.db.query(Product).filter(Product.operator_id == operator_id)
        if category:
            query = query.filter(Product.category == category)
        if not include_inactive:
            query = query.filter(Product.is_active == True)  # noqa: E712
        return query.order_by(Product.category, Product.name).all()

    def create_product(self, operator_id: int, data: ProductCreate) -> Product:
        product = Product(operator_id=operator_id, **data.model_dump())
        self.db.add(product)
        self.db.commit()
        self.db.refresh(product)
        logger.info(f"Product {product.name} added to catalog of operator {operator_id}")
        return product
