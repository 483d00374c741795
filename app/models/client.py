"""Client model."""
from sqlalchemy import Column, String, Text, Date, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base, IdType
from app.utils.formatters import iso


class Client(Base):
    """Client (paciente) of an optic."""

    __tablename__ = 'clients'

    id = Column(IdType, primary_key=True, autoincrement=True)
    optic_id = Column(IdType, ForeignKey('optics.id'), nullable=False, index=True)
    dni = Column(String(30), nullable=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=True)
    phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    address = Column(String(255), nullable=True)
    birth_date = Column(Date, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    optic = relationship('Optic')
    sales = relationship('Sale', back_populates='client')

    # dni is unique per optic among live clients
    __table_args__ = (
        Index(
            'uq_clients_optic_dni',
            'optic_id', 'dni',
            unique=True,
            postgresql_where=(dni.isnot(None) & deleted_at.is_(None)),
            sqlite_where=(dni.isnot(None) & deleted_at.is_(None)),
        ),
    )

    @property
    def full_name(self):
        return ' '.join(part for part in (self.first_name, self.last_name) if part)

    def to_dict(self):
        return {
            'id': self.id,
            'optic_id': self.optic_id,
            'dni': self.dni,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'full_name': self.full_name,
            'phone': self.phone,
            'email': self.email,
            'address': self.address,
            'birth_date': iso(self.birth_date),
            'notes': self.notes,
            'created_at': iso(self.created_at),
            'updated_at': iso(self.updated_at),
            'deleted_at': iso(self.deleted_at),
        }

    def __repr__(self):
        return f"<Client(id={self.id}, name='{self.full_name}', dni='{self.dni}')>"
