"""Dashboard configuration - which dashboard sections a user wants to see."""
import json
from sqlalchemy import Column, Text, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from app.database import Base, IdType
from app.utils.formatters import iso


DEFAULT_SECTIONS = {
    'totalSales': True,
    'totalRevenue': True,
    'totalClients': True,
    'totalProducts': True,
    'monthSales': True,
    'monthRevenue': True,
    'topProducts': True,
    'recentSales': True,
}


class DashboardConfig(Base):
    """Per user and optic dashboard preferences."""

    __tablename__ = 'dashboard_config'

    id = Column(IdType, primary_key=True, autoincrement=True)
    user_id = Column(IdType, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    optic_id = Column(IdType, ForeignKey('optics.id'), nullable=False)
    sections_visible = Column(Text, nullable=True)  # JSON object
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('user_id', 'optic_id', name='uq_dashboard_config_user_optic'),
    )

    @property
    def sections(self):
        if not self.sections_visible:
            return dict(DEFAULT_SECTIONS)
        try:
            return json.loads(self.sections_visible)
        except ValueError:
            return dict(DEFAULT_SECTIONS)

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'optic_id': self.optic_id,
            'sections_visible': self.sections,
            'created_at': iso(self.created_at),
            'updated_at': iso(self.updated_at),
        }
