"""
Deletion log model - append-only audit trail written with every soft delete.
"""
import json
from sqlalchemy import Column, String, Text, DateTime, ForeignKey
from sqlalchemy.sql import func
from app.database import Base, IdType
from app.utils.formatters import iso


class DeletionLog(Base):
    """Snapshot of a record taken right before it was soft deleted."""

    __tablename__ = 'deletion_logs'

    id = Column(IdType, primary_key=True, autoincrement=True)
    table_name = Column(String(50), nullable=False, index=True)
    record_id = Column(IdType, nullable=False)
    deleted_by = Column(IdType, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    deleted_data = Column(Text, nullable=False)  # JSON snapshot
    reason = Column(Text, nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)

    @property
    def snapshot(self):
        try:
            return json.loads(self.deleted_data)
        except (TypeError, ValueError):
            return self.deleted_data

    def to_dict(self):
        return {
            'id': self.id,
            'table_name': self.table_name,
            'record_id': self.record_id,
            'deleted_by': self.deleted_by,
            'deleted_data': self.snapshot,
            'reason': self.reason,
            'deleted_at': iso(self.deleted_at),
        }

    def __repr__(self):
        return f"<DeletionLog {self.table_name}#{self.record_id} by user {self.deleted_by}>"
