"""
Service for the activity (audit) log.

Audit entries are best-effort: each one is written in its own savepoint, and a
failure is logged and dropped so it never aborts the operation being audited.
"""

import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models.activity_log import ActivityLog

logger = logging.getLogger(__name__)


class ActivityLogService:
    """Service for activity log operations."""

    @staticmethod
    def log_activity(
        db: Session,
        user_id: Optional[int],
        action: str,
        resource_type: str,
        resource_id: Optional[int] = None,
        details: Optional[str] = None
    ) -> Optional[ActivityLog]:
        """
        Record an audit entry.

        Returns:
            The created entry, or None if it could not be written
        """
        try:
            with db.begin_nested():
                entry = ActivityLog(
                    user_id=user_id,
                    action=action,
                    resource_type=resource_type,
                    resource_id=resource_id,
                    details=details
                )
                db.add(entry)
                db.flush()
            return entry
        except SQLAlchemyError as e:
            logger.warning(f"Failed to write activity log entry {action} for {resource_type} {resource_id}: {e}")
            return None

    @staticmethod
    def get_activity_for_resource(
        db: Session,
        resource_type: str,
        resource_id: int
    ) -> List[ActivityLog]:
        """Get audit entries for a resource, oldest first."""
        return db.query(ActivityLog).filter(
            ActivityLog.resource_type == resource_type,
            ActivityLog.resource_id == resource_id
        ).order_by(ActivityLog.id).all()
