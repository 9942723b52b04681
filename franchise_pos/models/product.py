"""Product model."""
from sqlalchemy import Column, String, Boolean, Integer, Numeric, DateTime, CheckConstraint, UniqueConstraint
from franchise_pos.database import Base, IdType
from franchise_pos.utils.clock import utcnow
from franchise_pos.utils.formatters import money, iso


class Product(Base):
    """Product stocked by a single franchise."""

    __tablename__ = 'product'
    __table_args__ = (
        CheckConstraint('stock >= 0', name='ck_product_stock_non_negative'),
        CheckConstraint('missing >= 0', name='ck_product_missing_non_negative'),
        UniqueConstraint('franchise_id', 'sku', name='uq_product_franchise_sku'),
    )

    id = Column(IdType, primary_key=True, autoincrement=True)
    franchise_id = Column(String(64), nullable=False, index=True)  # immutable after creation
    name = Column(String(200), nullable=False)
    sku = Column(String(64), nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    stock = Column(Integer, nullable=False, default=0)
    # Units sold since the last replenishment
    missing = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', stock={self.stock}, missing={self.missing})>"

    def counters(self):
        """Snapshot of the inventory counters, used in audit payloads."""
        return {'stock': self.stock, 'missing': self.missing}

    def to_dict(self):
        return {
            'id': self.id,
            'franchise_id': self.franchise_id,
            'name': self.name,
            'sku': self.sku,
            'price': money(self.price),
            'stock': self.stock,
            'missing': self.missing,
            'is_active': self.is_active,
            'created_at': iso(self.created_at),
            'updated_at': iso(self.updated_at),
        }
