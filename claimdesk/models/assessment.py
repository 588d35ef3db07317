"""Assessment model."""
from decimal import Decimal
from sqlalchemy import Column, String, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from claimdesk.database import Base, BigIntId


class Assessment(Base):
    """Vehicle damage assessment; owns the additionals ledger."""

    __tablename__ = 'assessment'

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    assessment_number = Column(String(50), nullable=False, unique=True, index=True)
    client_id = Column(BigIntId, ForeignKey('client.id'), nullable=True)
    vat_percentage = Column(Numeric(5, 2), nullable=False, default=Decimal('15.00'))
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    client = relationship('Client', back_populates='assessments')
    line_items = relationship(
        'LineItem',
        back_populates='assessment',
        order_by='LineItem.id'
    )
    vehicle_values = relationship('VehicleValues', back_populates='assessment', uselist=False)

    def to_dict(self):
        return {
            'id': self.id,
            'assessment_number': self.assessment_number,
            'client_id': self.client_id,
            'vat_percentage': str(self.vat_percentage),
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Assessment(id={self.id}, number={self.assessment_number})>"
