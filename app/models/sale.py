"""Sale model."""
from sqlalchemy import Column, Integer, String, Text, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base, IdType
from app.utils.formatters import iso, to_float


PRESCRIPTION_FIELDS = (
    'od_esf', 'od_cil', 'od_eje', 'od_add',
    'oi_esf', 'oi_cil', 'oi_eje', 'oi_add',
)

# Axis (eje) is an integer in degrees, the rest are diopters
AXIS_FIELDS = ('od_eje', 'oi_eje')


class PrescriptionMixin:
    """Ficha técnica: OD (ojo derecho) / OI (ojo izquierdo)."""

    od_esf = Column(Numeric(5, 2), nullable=True)
    od_cil = Column(Numeric(5, 2), nullable=True)
    od_eje = Column(Integer, nullable=True)
    od_add = Column(Numeric(5, 2), nullable=True)

    oi_esf = Column(Numeric(5, 2), nullable=True)
    oi_cil = Column(Numeric(5, 2), nullable=True)
    oi_eje = Column(Integer, nullable=True)
    oi_add = Column(Numeric(5, 2), nullable=True)

    def prescription_dict(self):
        return {
            field: (getattr(self, field) if field in AXIS_FIELDS else to_float(getattr(self, field)))
            for field in PRESCRIPTION_FIELDS
        }


class Sale(PrescriptionMixin, Base):
    """Sale header (venta). total_amount is the sum of its items."""

    __tablename__ = 'sales'

    id = Column(IdType, primary_key=True, autoincrement=True)
    optic_id = Column(IdType, ForeignKey('optics.id'), nullable=False, index=True)
    client_id = Column(IdType, ForeignKey('clients.id', ondelete='SET NULL'), nullable=True, index=True)
    unregistered_client_name = Column(String(200), nullable=True)
    user_id = Column(IdType, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    total_amount = Column(Numeric(12, 2), nullable=False, default=0, server_default='0')
    sale_date = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    optic = relationship('Optic')
    client = relationship('Client', back_populates='sales')
    user = relationship('User')
    items = relationship(
        'SaleItem',
        back_populates='sale',
        cascade='all, delete-orphan',
        passive_deletes=True,
        order_by='SaleItem.id',
    )

    @property
    def client_name(self):
        """Display name: registered client, walk-in name, or fallback."""
        if self.client is not None:
            return self.client.full_name
        return self.unregistered_client_name or 'Cliente no registrado'

    def to_dict(self, include_items=True):
        data = {
            'id': self.id,
            'optic_id': self.optic_id,
            'client_id': self.client_id,
            'unregistered_client_name': self.unregistered_client_name,
            'client_name': self.client_name,
            'user_id': self.user_id,
            'user_name': self.user.username if self.user else None,
            'total_amount': to_float(self.total_amount),
            'sale_date': iso(self.sale_date),
            'notes': self.notes,
            'created_at': iso(self.created_at),
            'updated_at': iso(self.updated_at),
            'deleted_at': iso(self.deleted_at),
        }
        data.update(self.prescription_dict())
        if include_items:
            data['items'] = [item.to_dict() for item in self.items]
        return data

    def __repr__(self):
        return f"<Sale(id={self.id}, total={self.total_amount}, optic_id={self.optic_id})>"
