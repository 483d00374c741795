"""SaleItem model."""
from sqlalchemy import Column, Integer, String, Text, Numeric, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base, IdType
from app.models.sale import PrescriptionMixin
from app.utils.formatters import iso, to_float


class SaleItem(PrescriptionMixin, Base):
    """Line item of a sale: a registered product or a free-text one."""

    __tablename__ = 'sale_items'

    id = Column(IdType, primary_key=True, autoincrement=True)
    sale_id = Column(IdType, ForeignKey('sales.id', ondelete='CASCADE'), nullable=False, index=True)
    product_id = Column(IdType, ForeignKey('products.id', ondelete='SET NULL'), nullable=True, index=True)
    unregistered_product_name = Column(String(200), nullable=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    total_price = Column(Numeric(12, 2), nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    sale = relationship('Sale', back_populates='items')
    product = relationship('Product')

    __table_args__ = (
        CheckConstraint('quantity > 0', name='ck_sale_items_quantity_positive'),
        CheckConstraint('unit_price >= 0', name='ck_sale_items_unit_price_non_negative'),
    )

    @property
    def product_name(self):
        if self.product is not None:
            return self.product.name
        return self.unregistered_product_name

    def to_dict(self):
        data = {
            'id': self.id,
            'sale_id': self.sale_id,
            'product_id': self.product_id,
            'unregistered_product_name': self.unregistered_product_name,
            'product_name': self.product_name,
            'product_price': to_float(self.product.price) if self.product is not None else None,
            'quantity': self.quantity,
            'unit_price': to_float(self.unit_price),
            'total_price': to_float(self.total_price),
            'notes': self.notes,
            'created_at': iso(self.created_at),
        }
        data.update(self.prescription_dict())
        return data

    def __repr__(self):
        return f"<SaleItem(id={self.id}, sale_id={self.sale_id}, qty={self.quantity})>"
