"""Vehicle Values model (trade / market / retail valuation)."""
from sqlalchemy import Column, Numeric, String, Text, DateTime, JSON, ForeignKey
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from claimdesk.database import Base, BigIntId


VARIANTS = ('trade', 'market', 'retail')


def _money():
    return Column(Numeric(12, 2), nullable=True)


class VehicleValues(Base):
    """Valuation of the assessed vehicle. One row per assessment."""

    __tablename__ = 'vehicle_values'

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    assessment_id = Column(BigIntId, ForeignKey('assessment.id'), nullable=False, unique=True)

    sourced_from = Column(String(120), nullable=True)
    sourced_code = Column(String(60), nullable=True)
    remarks = Column(Text, nullable=True)

    # Base values
    trade_value = _money()
    market_value = _money()
    retail_value = _money()

    # Adjustments, applied in order: fixed -> percentage of base -> condition value
    valuation_adjustment = _money()
    valuation_adjustment_percentage = Column(Numeric(6, 2), nullable=True)
    condition_adjustment_value = _money()

    # [{"description": ..., "trade_value": ..., "market_value": ..., "retail_value": ...}]
    extras = Column(JSON().with_variant(JSONB, 'postgresql'), nullable=True)

    # Derived
    trade_adjusted_value = _money()
    market_adjusted_value = _money()
    retail_adjusted_value = _money()
    trade_extras_total = _money()
    market_extras_total = _money()
    retail_extras_total = _money()
    trade_total_adjusted_value = _money()
    market_total_adjusted_value = _money()
    retail_total_adjusted_value = _money()

    borderline_writeoff_trade = _money()
    borderline_writeoff_market = _money()
    borderline_writeoff_retail = _money()
    total_writeoff_trade = _money()
    total_writeoff_market = _money()
    total_writeoff_retail = _money()
    salvage_trade = _money()
    salvage_market = _money()
    salvage_retail = _money()

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    # Relationships
    assessment = relationship('Assessment', back_populates='vehicle_values')

    def to_dict(self):
        data = {
            'id': self.id,
            'assessment_id': self.assessment_id,
            'sourced_from': self.sourced_from,
            'sourced_code': self.sourced_code,
            'remarks': self.remarks,
            'extras': self.extras or [],
        }
        money_fields = ['valuation_adjustment', 'valuation_adjustment_percentage', 'condition_adjustment_value']
        for variant in VARIANTS:
            money_fields += [
                f'{variant}_value',
                f'{variant}_adjusted_value',
                f'{variant}_extras_total',
                f'{variant}_total_adjusted_value',
                f'borderline_writeoff_{variant}',
                f'total_writeoff_{variant}',
                f'salvage_{variant}',
            ]
        for field in money_fields:
            value = getattr(self, field)
            data[field] = str(value) if value is not None else None
        return data

    def __repr__(self):
        return f"<VehicleValues(assessment_id={self.assessment_id}, retail={self.retail_value})>"
