import uuid
from datetime import datetime
from sqlalchemy import Column, DateTime, String, Text, UniqueConstraint, Uuid

from .database import Base


class ItemConstraint(Base):
    """Compatibility rule between two catalog entries.

    MUTUALLY_EXCLUSIVE forbids both in one cart; REQUIRES means the target
    needs the related entry. Types are stored as plain strings so rows
    written with unknown types are still readable (they are inert).
    """
    __tablename__ = "item_constraints"
    __table_args__ = (
        UniqueConstraint(
            "target_item_id",
            "target_item_type",
            "related_item_id",
            "related_item_type",
            "constraint_type",
            name="ux_item_constraints_rule",
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    target_item_id = Column(Uuid, nullable=False, index=True)
    target_item_type = Column(String, nullable=False)  # 'PRODUCT' | 'ADDITIONAL'
    related_item_id = Column(Uuid, nullable=False, index=True)
    related_item_type = Column(String, nullable=False)  # 'PRODUCT' | 'ADDITIONAL'
    constraint_type = Column(String, nullable=False)  # 'MUTUALLY_EXCLUSIVE' | 'REQUIRES'
    message = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "target_item_id": self.target_item_id,
            "target_item_type": self.target_item_type,
            "related_item_id": self.related_item_id,
            "related_item_type": self.related_item_type,
            "constraint_type": self.constraint_type,
            "message": self.message,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
