import uuid
from datetime import datetime
from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from .database import Base


class ProductComponent(Base):
    """Bill-of-materials link: one unit of product consumes `quantity` units of item."""
    __tablename__ = "product_components"
    __table_args__ = (
        UniqueConstraint("product_id", "item_id", name="ux_product_components_product_item"),
        CheckConstraint("quantity > 0", name="ck_product_components_quantity_positive"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    product_id = Column(Uuid, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    item_id = Column(Uuid, ForeignKey("items.id", ondelete="RESTRICT"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)  # item units per product unit
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    product = relationship("Product", back_populates="components")
    item = relationship("Item", back_populates="components")

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "product_id": self.product_id,
            "item_id": self.item_id,
            "item_name": self.item.name if self.item else None,
            "item_stock": self.item.stock_quantity if self.item else None,
            "quantity": self.quantity,
        }
