import uuid
from datetime import datetime
from sqlalchemy import CheckConstraint, Column, DateTime, Integer, String, Text, Uuid
from sqlalchemy.orm import relationship

from .database import Base


class Item(Base):
    """Base stock item. Products consume items through ProductComponent;
    items are also sold directly as cart additionals."""
    __tablename__ = "items"
    __table_args__ = (
        CheckConstraint("stock_quantity >= 0", name="ck_items_stock_non_negative"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False, index=True)
    description = Column(Text, nullable=True)
    stock_quantity = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    components = relationship("ProductComponent", back_populates="item")

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "stock_quantity": self.stock_quantity,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
