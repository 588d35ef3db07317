"""Line Item model - entries of the append-only additionals ledger."""
from sqlalchemy import Column, String, Numeric, DateTime, Text, Enum, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from claimdesk.database import Base, BigIntId
import enum


class LineItemAction(enum.Enum):
    """How the entry came to exist."""
    ADDED = "added"
    REMOVED = "removed"
    REVERSAL = "reversal"


class LineItemStatus(enum.Enum):
    """Workflow state. APPROVED and DECLINED are terminal for edits."""
    PENDING = "pending"
    APPROVED = "approved"
    DECLINED = "declined"


class LineItemSource(enum.Enum):
    """Whether the line belongs to the original estimate or was added later."""
    ESTIMATE = "estimate"
    ADDITIONAL = "additional"


TERMINAL_STATUSES = (LineItemStatus.APPROVED, LineItemStatus.DECLINED)


class LineItem(Base):
    """
    One estimate entry: an original repair line, an additional, a removal of an
    original line, or a reversal of any of those.

    Rows are appended and never rewritten once approved or declined; the id
    order is the audit order.
    """

    __tablename__ = 'line_item'

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    assessment_id = Column(BigIntId, ForeignKey('assessment.id'), nullable=False, index=True)
    source = Column(Enum(LineItemSource, name='line_item_source'), nullable=False, default=LineItemSource.ADDITIONAL)
    action = Column(Enum(LineItemAction, name='line_item_action'), nullable=False, default=LineItemAction.ADDED)
    status = Column(Enum(LineItemStatus, name='line_item_status'), nullable=False, default=LineItemStatus.PENDING)
    description = Column(String(255), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)

    # Removal of an original estimate line (action=removed)
    original_line_id = Column(BigIntId, ForeignKey('line_item.id'), nullable=True, index=True)

    # Counter-entry back-reference (action=reversal)
    reverses_line_id = Column(BigIntId, ForeignKey('line_item.id'), nullable=True, index=True)
    reversal_reason = Column(Text, nullable=True)

    removal_reason = Column(Text, nullable=True)
    decline_reason = Column(Text, nullable=True)
    created_by = Column(String(120), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    approved_at = Column(DateTime(timezone=True), nullable=True)
    declined_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    assessment = relationship('Assessment', back_populates='line_items')

    @property
    def is_terminal(self):
        return self.status in TERMINAL_STATUSES

    def to_dict(self):
        return {
            'id': self.id,
            'assessment_id': self.assessment_id,
            'source': self.source.value,
            'action': self.action.value,
            'status': self.status.value,
            'description': self.description,
            'amount': str(self.amount),
            'original_line_id': self.original_line_id,
            'reverses_line_id': self.reverses_line_id,
            'reversal_reason': self.reversal_reason,
            'removal_reason': self.removal_reason,
            'decline_reason': self.decline_reason,
            'created_by': self.created_by,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'approved_at': self.approved_at.isoformat() if self.approved_at else None,
            'declined_at': self.declined_at.isoformat() if self.declined_at else None,
        }

    def __repr__(self):
        return (
            f"<LineItem(id={self.id}, action={self.action.value}, "
            f"status={self.status.value}, amount={self.amount})>"
        )
