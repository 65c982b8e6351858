"""
ActivityLog model: audit trail of user actions.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, Text, TIMESTAMP, Index
from sqlalchemy.orm import Mapped, mapped_column

from core.database import Base


class ActivityLog(Base):
    """Audit entry attributing an action on a resource to a user."""

    __tablename__ = "activity_logs"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the log entry."""

    user_id: Mapped[Optional[int]] = mapped_column(nullable=True)
    """Acting user."""

    action: Mapped[str] = mapped_column(String(50))
    """Action name, e.g. REBATE_RECORDED."""

    resource_type: Mapped[str] = mapped_column(String(50))
    """Kind of resource acted on, e.g. TRANSACTION."""

    resource_id: Mapped[Optional[int]] = mapped_column(nullable=True)
    """Identifier of the resource."""

    details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    """Human-readable description."""

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    """Timestamp of the action."""

    __table_args__ = (
        Index('idx_activity_logs_user', 'user_id'),
        Index('idx_activity_logs_action', 'action'),
    )
