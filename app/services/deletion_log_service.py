"""
Deletion log service.

Every soft delete writes an append-only snapshot row. The log is added to the
caller's session so it commits (or rolls back) together with the delete.
"""
import json
import logging
from typing import Any, Dict, Optional

from app.models import DeletionLog
from app.utils.pagination import paginate_query

logger = logging.getLogger(__name__)


def log_deletion(session, table_name: str, record_id: int, deleted_by: Optional[int],
                 deleted_data: Dict[str, Any], reason: Optional[str] = None) -> DeletionLog:
    """
    Add a DeletionLog row to the session (no commit).

    Args:
        session: SQLAlchemy session owning the delete transaction
        table_name: Source table of the deleted record
        record_id: Primary key of the deleted record
        deleted_by: Acting user id
        deleted_data: Snapshot of the record before deletion
        reason: Optional free-text reason
    """
    entry = DeletionLog(
        table_name=table_name,
        record_id=record_id,
        deleted_by=deleted_by,
        deleted_data=json.dumps(deleted_data, default=str, ensure_ascii=False),
        reason=reason,
    )
    session.add(entry)
    logger.info(f"Deletion logged: {table_name}#{record_id} by user {deleted_by}")
    return entry


def list_deletion_logs(session, table_name: Optional[str] = None, page: int = 1, limit: int = 100):
    """Newest first, optionally filtered by table. Returns (logs, total)."""
    query = session.query(DeletionLog)
    if table_name:
        query = query.filter(DeletionLog.table_name == table_name)
    query = query.order_by(DeletionLog.deleted_at.desc(), DeletionLog.id.desc())
    return paginate_query(query, page, limit)
