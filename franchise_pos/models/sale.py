"""Sale model and its lifecycle."""
from sqlalchemy import Column, String, Numeric, DateTime, Enum
from sqlalchemy.orm import relationship
from franchise_pos.database import Base, IdType
from franchise_pos.utils.clock import utcnow
from franchise_pos.utils.formatters import money, iso, card_last4
import enum


class SaleStatus(enum.Enum):
    """Sale status enum. Sales are born COMPLETED; the other two are terminal."""
    COMPLETED = "COMPLETED"
    CANCELED = "CANCELED"
    REFUNDED = "REFUNDED"


ALLOWED_TRANSITIONS = {
    SaleStatus.COMPLETED: frozenset({SaleStatus.CANCELED, SaleStatus.REFUNDED}),
    SaleStatus.CANCELED: frozenset(),
    SaleStatus.REFUNDED: frozenset(),
}


def can_transition(current: SaleStatus, target: SaleStatus) -> bool:
    """Check whether a sale in `current` may move to `target`."""
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


class Sale(Base):
    """Sale recorded against a franchise's inventory."""

    __tablename__ = 'sale'

    id = Column(IdType, primary_key=True, autoincrement=True)
    franchise_id = Column(String(64), nullable=False, index=True)
    seller_id = Column(String(64), nullable=False, index=True)
    # Opaque 12-19 digit string, never processed
    card_number = Column(String(19), nullable=False)
    total = Column(Numeric(12, 2), nullable=False)
    status = Column(Enum(SaleStatus, name='sale_status'), nullable=False, default=SaleStatus.COMPLETED)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    # Reversal metadata, set only when leaving COMPLETED
    closed_by = Column(String(64), nullable=True)
    close_reason = Column(String(255), nullable=True)
    closed_at = Column(DateTime, nullable=True)
    refund_total = Column(Numeric(12, 2), nullable=True)

    # Relationships
    items = relationship('SaleItem', back_populates='sale', cascade='all, delete-orphan', order_by='SaleItem.id')

    def __repr__(self):
        status = self.status.value if self.status else None
        return f"<Sale(id={self.id}, total={self.total}, status={status})>"

    def can_transition_to(self, target: SaleStatus) -> bool:
        return can_transition(self.status, target)

    @property
    def card_last4(self):
        return card_last4(self.card_number)

    @property
    def item_count(self):
        """Total units across all items."""
        return sum(item.qty for item in self.items)

    def to_dict(self, include_items=True):
        data = {
            'id': self.id,
            'franchise_id': self.franchise_id,
            'seller_id': self.seller_id,
            'card_last4': self.card_last4,
            'total': money(self.total),
            'status': self.status.value,
            'created_at': iso(self.created_at),
            'closed_by': self.closed_by,
            'close_reason': self.close_reason,
            'closed_at': iso(self.closed_at),
            'refund_total': money(self.refund_total),
        }
        if include_items:
            data['items'] = [item.to_dict() for item in self.items]
        return data
