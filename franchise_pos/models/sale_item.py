"""Sale Item model."""
from sqlalchemy import Column, Integer, Numeric, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from franchise_pos.database import Base, IdType
from franchise_pos.utils.formatters import money


class SaleItem(Base):
    """Sale Item - price is a snapshot taken when the sale was committed."""

    __tablename__ = 'sale_item'
    __table_args__ = (
        CheckConstraint('qty > 0', name='ck_sale_item_qty_positive'),
    )

    id = Column(IdType, primary_key=True, autoincrement=True)
    sale_id = Column(IdType, ForeignKey('sale.id'), nullable=False, index=True)
    product_id = Column(IdType, ForeignKey('product.id'), nullable=False)
    qty = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    subtotal = Column(Numeric(12, 2), nullable=False)

    # Relationships
    sale = relationship('Sale', back_populates='items')
    product = relationship('Product')

    def __repr__(self):
        return f"<SaleItem(id={self.id}, product_id={self.product_id}, qty={self.qty})>"

    def to_dict(self):
        return {
            'id': self.id,
            'product_id': self.product_id,
            'product_name': self.product.name if self.product is not None else None,
            'qty': self.qty,
            'price': money(self.price),
            'subtotal': money(self.subtotal),
        }
