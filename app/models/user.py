"""User model - platform users bound to one optic."""
import enum
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, true, false
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from werkzeug.security import generate_password_hash, check_password_hash
from app.database import Base, IdType
from app.utils.formatters import iso


class UserRole(str, enum.Enum):
    """User roles. ADMIN sees every optic."""
    ADMIN = 'admin'
    USER = 'user'


class User(Base):
    """User model - local username/password authentication."""

    __tablename__ = 'users'

    id = Column(IdType, primary_key=True, autoincrement=True)
    username = Column(String(100), nullable=False, unique=True)
    email = Column(String(255), nullable=False, unique=True)
    password = Column(String(255), nullable=False)  # hash, never plain text
    optic_id = Column(IdType, ForeignKey('optics.id'), nullable=True, index=True)
    role = Column(String(20), nullable=False, default=UserRole.USER.value, server_default=UserRole.USER.value)
    is_approved = Column(Boolean, nullable=False, default=False, server_default=false())
    is_active = Column(Boolean, nullable=False, default=True, server_default=true())

    # Password reset
    reset_token = Column(String(128), nullable=True, index=True)
    reset_token_expiry = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    optic = relationship('Optic', back_populates='users')

    def set_password(self, password):
        """Set password hash."""
        self.password = generate_password_hash(password, method='scrypt')

    def check_password(self, password):
        """Check password against hash."""
        if not self.password:
            return False
        return check_password_hash(self.password, password)

    @property
    def is_admin(self):
        return self.role == UserRole.ADMIN.value

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'email': self.email,
            'optic_id': self.optic_id,
            'role': self.role,
            'is_approved': self.is_approved,
            'is_active': self.is_active,
            'created_at': iso(self.created_at),
            'updated_at': iso(self.updated_at),
        }

    def __repr__(self):
        return f"<User(id={self.id}, username='{self.username}', role='{self.role}')>"
