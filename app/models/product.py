"""Product model."""
from sqlalchemy import Column, Integer, String, Text, Numeric, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base, IdType
from app.utils.formatters import iso, to_float


class Product(Base):
    """Product model (armazones, lentes, accesorios)."""

    __tablename__ = 'products'

    id = Column(IdType, primary_key=True, autoincrement=True)
    optic_id = Column(IdType, ForeignKey('optics.id'), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    brand = Column(String(100), nullable=True)
    model = Column(String(100), nullable=True)
    color = Column(String(50), nullable=True)
    size = Column(String(50), nullable=True)
    price = Column(Numeric(10, 2), nullable=False, default=0, server_default='0')
    stock_quantity = Column(Integer, nullable=False, default=0, server_default='0')
    image_url = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    optic = relationship('Optic')

    __table_args__ = (
        CheckConstraint('price >= 0', name='ck_products_price_non_negative'),
        CheckConstraint('stock_quantity >= 0', name='ck_products_stock_non_negative'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'optic_id': self.optic_id,
            'name': self.name,
            'brand': self.brand,
            'model': self.model,
            'color': self.color,
            'size': self.size,
            'price': to_float(self.price),
            'stock_quantity': self.stock_quantity,
            'image_url': self.image_url,
            'description': self.description,
            'created_at': iso(self.created_at),
            'updated_at': iso(self.updated_at),
            'deleted_at': iso(self.deleted_at),
        }

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', stock={self.stock_quantity})>"
