"""Optic model - each optical shop (tenant) using the platform."""
from sqlalchemy import Column, String, Boolean, DateTime, true
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base, IdType
from app.utils.formatters import iso


class Optic(Base):
    """Optic model - root of multi-tenancy."""

    __tablename__ = 'optics'

    id = Column(IdType, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    address = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default=true())
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    users = relationship('User', back_populates='optic')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'address': self.address,
            'phone': self.phone,
            'email': self.email,
            'is_active': self.is_active,
            'created_at': iso(self.created_at),
            'updated_at': iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Optic(id={self.id}, name='{self.name}')>"
