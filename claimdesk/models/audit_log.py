"""
Audit Log model for tracking ledger and valuation changes.
"""
from sqlalchemy import Column, String, Text, DateTime, JSON, Enum as SQLEnum
from sqlalchemy.dialects.postgresql import JSONB
from datetime import datetime, timezone
import enum

from claimdesk.database import Base, BigIntId


class AuditAction(enum.Enum):
    """Enumeration of auditable actions."""
    # Ledger
    LINE_ITEM_ADDED = "LINE_ITEM_ADDED"
    LINE_ITEM_APPROVED = "LINE_ITEM_APPROVED"
    LINE_ITEM_DECLINED = "LINE_ITEM_DECLINED"
    LINE_ITEM_DELETED = "LINE_ITEM_DELETED"
    LINE_ITEM_REVERSED = "LINE_ITEM_REVERSED"
    LINE_ITEM_REINSTATED = "LINE_ITEM_REINSTATED"
    ORIGINAL_LINE_REMOVED = "ORIGINAL_LINE_REMOVED"
    ORIGINAL_LINE_REINSTATED = "ORIGINAL_LINE_REINSTATED"
    ESTIMATE_LINES_IMPORTED = "ESTIMATE_LINES_IMPORTED"

    # Assessment
    ASSESSMENT_CREATED = "ASSESSMENT_CREATED"
    VALUATION_UPDATED = "VALUATION_UPDATED"


class AuditLog(Base):
    """
    Audit trail entry. Written best-effort after the audited change is committed.
    """
    __tablename__ = 'audit_log'

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    entity_type = Column(String(50), nullable=False, index=True)  # e.g. 'line_item', 'assessment'
    entity_id = Column(String(64), nullable=False, index=True)
    assessment_id = Column(BigIntId, nullable=True, index=True)
    action = Column(SQLEnum(AuditAction), nullable=False, index=True)
    changed_by = Column(String(120))
    reason = Column(Text)
    old_value = Column(Text)
    new_value = Column(Text)
    # 'metadata' is reserved on declarative classes
    details = Column('metadata', JSON().with_variant(JSONB, 'postgresql'))
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True
    )

    def to_dict(self):
        return {
            'id': self.id,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'assessment_id': self.assessment_id,
            'action': self.action.value,
            'changed_by': self.changed_by,
            'reason': self.reason,
            'old_value': self.old_value,
            'new_value': self.new_value,
            'metadata': self.details or {},
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<AuditLog {self.action.value} by {self.changed_by} at {self.created_at}>"
