"""Registration request model - self-service signup awaiting admin review."""
import enum
from sqlalchemy import Column, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base, IdType
from app.utils.formatters import iso


class RequestStatus(str, enum.Enum):
    """Registration request lifecycle. APPROVED and REJECTED are terminal."""
    PENDING = 'pending'
    APPROVED = 'approved'
    REJECTED = 'rejected'


class RegistrationRequest(Base):
    """
    Pending user + optic registration.

    The desired optic is stored denormalized (optic_name and contact fields);
    user_id and optic_id are filled in when the request is approved.
    """

    __tablename__ = 'registration_requests'

    id = Column(IdType, primary_key=True, autoincrement=True)
    username = Column(String(100), nullable=False, index=True)
    email = Column(String(255), nullable=False)
    password = Column(String(255), nullable=False)  # already hashed
    optic_name = Column(String(200), nullable=False)
    optic_address = Column(String(255), nullable=True)
    optic_phone = Column(String(50), nullable=True)
    optic_email = Column(String(255), nullable=True)

    user_id = Column(IdType, ForeignKey('users.id'), nullable=True)
    optic_id = Column(IdType, ForeignKey('optics.id'), nullable=True)

    status = Column(String(20), nullable=False, default=RequestStatus.PENDING.value,
                    server_default=RequestStatus.PENDING.value, index=True)
    admin_notes = Column(Text, nullable=True)
    reviewed_by = Column(IdType, ForeignKey('users.id'), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship('User', foreign_keys=[user_id])
    reviewer = relationship('User', foreign_keys=[reviewed_by])
    optic = relationship('Optic', foreign_keys=[optic_id])

    @property
    def is_pending(self):
        return self.status == RequestStatus.PENDING.value

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'email': self.email,
            'optic_name': self.optic_name,
            'optic_address': self.optic_address,
            'optic_phone': self.optic_phone,
            'optic_email': self.optic_email,
            'user_id': self.user_id,
            'optic_id': self.optic_id,
            'status': self.status,
            'admin_notes': self.admin_notes,
            'reviewed_by': self.reviewed_by,
            'reviewer_username': self.reviewer.username if self.reviewer else None,
            'reviewed_at': iso(self.reviewed_at),
            'created_at': iso(self.created_at),
            'updated_at': iso(self.updated_at),
        }

    def __repr__(self):
        return f"<RegistrationRequest(id={self.id}, username='{self.username}', status='{self.status}')>"
