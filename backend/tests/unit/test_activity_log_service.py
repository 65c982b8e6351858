"""
Unit tests for ActivityLogService.
"""

from unittest.mock import MagicMock

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from services.activity_log_service import ActivityLogService


class TestActivityLogService:
    """Test audit log writes and reads."""

    def test_log_and_read_back(self, db_session: Session):
        ActivityLogService.log_activity(
            db_session, user_id=3, action="REBATE_RECORDED", resource_type="TRANSACTION",
            resource_id=42, details="Rebate of 300.00 recorded"
        )
        ActivityLogService.log_activity(
            db_session, user_id=3, action="REBATE_REVERSED", resource_type="TRANSACTION", resource_id=42
        )
        ActivityLogService.log_activity(
            db_session, user_id=3, action="REBATE_RECORDED", resource_type="TRANSACTION", resource_id=43
        )

        entries = ActivityLogService.get_activity_for_resource(db_session, "TRANSACTION", 42)

        assert [entry.action for entry in entries] == ["REBATE_RECORDED", "REBATE_REVERSED"]
        assert entries[0].details == "Rebate of 300.00 recorded"
        assert entries[0].created_at is not None

    def test_write_failure_is_swallowed(self, caplog):
        """A failed audit write must not abort the operation being audited."""
        db = MagicMock()
        db.flush.side_effect = SQLAlchemyError("disk full")

        entry = ActivityLogService.log_activity(
            db, user_id=None, action="REBATE_RECORDED", resource_type="TRANSACTION", resource_id=1
        )

        assert entry is None
        assert "Failed to write activity log entry" in caplog.text
