"""
Audit Log model for tracking inventory and sale mutations.
Append-only: the engine never updates or deletes rows.
"""
from sqlalchemy import Column, String, DateTime, JSON, Enum as SQLEnum
from franchise_pos.database import Base, IdType
from franchise_pos.utils.clock import utcnow
from franchise_pos.utils.formatters import iso
import enum


class AuditAction(enum.Enum):
    """Enumeration of auditable actions."""
    # Product management
    PRODUCT_CREATE = "PRODUCT_CREATE"
    PRODUCT_RESTOCK = "PRODUCT_RESTOCK"
    PRODUCT_ADJUST = "PRODUCT_ADJUST"

    # Sales
    SALE_CREATE = "SALE_CREATE"
    SALE_CANCEL = "SALE_CANCEL"
    SALE_REFUND = "SALE_REFUND"

    # Reports
    DAY_CLOSE = "DAY_CLOSE"


class AuditLog(Base):
    """
    Audit log entry.
    Multi-franchise: filtered by franchise_id.
    """
    __tablename__ = 'audit_log'

    id = Column(IdType, primary_key=True, autoincrement=True)
    action = Column(SQLEnum(AuditAction, name='audit_action'), nullable=False, index=True)
    entity = Column(String(50), nullable=False)  # e.g., 'Product', 'Sale'
    entity_id = Column(String(64))
    franchise_id = Column(String(64), index=True)
    user_id = Column(String(64), index=True)
    role = Column(String(32))
    payload = Column(JSON)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog {self.action.value} by user {self.user_id} at {self.created_at}>"

    def to_dict(self):
        return {
            'id': self.id,
            'action': self.action.value,
            'entity': self.entity,
            'entity_id': self.entity_id,
            'franchise_id': self.franchise_id,
            'user_id': self.user_id,
            'role': self.role,
            'payload': self.payload,
            'created_at': iso(self.created_at),
        }
