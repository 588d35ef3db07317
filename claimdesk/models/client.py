"""Client (insurer) model."""
from sqlalchemy import Column, String, Numeric, Boolean, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from claimdesk.database import Base, BigIntId


class Client(Base):
    """Insurer or fleet client that requests assessments."""

    __tablename__ = 'client'

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    type = Column(String(30), nullable=False, default='insurance')
    is_active = Column(Boolean, nullable=False, default=True)

    # Write-off thresholds, as a percentage of the total adjusted vehicle value
    borderline_writeoff_percentage = Column(Numeric(5, 2), nullable=True)
    total_writeoff_percentage = Column(Numeric(5, 2), nullable=True)
    salvage_percentage = Column(Numeric(5, 2), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    assessments = relationship('Assessment', back_populates='client')

    def to_dict(self):
        data = {
            'id': self.id,
            'name': self.name,
            'type': self.type,
            'is_active': self.is_active,
        }
        for field in ('borderline_writeoff_percentage', 'total_writeoff_percentage', 'salvage_percentage'):
            value = getattr(self, field)
            data[field] = str(value) if value is not None else None
        return data

    def __repr__(self):
        return f"<Client(id={self.id}, name={self.name})>"
