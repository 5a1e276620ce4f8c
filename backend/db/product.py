import uuid
from datetime import datetime
from sqlalchemy import Column, DateTime, Integer, String, Uuid
from sqlalchemy.orm import relationship

from .database import Base


class Product(Base):
    """Sellable product.

    stock_quantity is a cache of the derived stock when the product has
    components, and the authoritative counter when it has none (NULL there
    means the product is not stock-controlled).
    """
    __tablename__ = "products"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False, index=True)
    stock_quantity = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    components = relationship(
        "ProductComponent",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="ProductComponent.created_at",
    )

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "name": self.name,
            "stock_quantity": self.stock_quantity,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
