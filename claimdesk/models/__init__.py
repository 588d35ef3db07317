"""Models package - exports all SQLAlchemy models."""
from claimdesk.models.client import Client
from claimdesk.models.assessment import Assessment
from claimdesk.models.line_item import (
    LineItem, LineItemAction, LineItemStatus, LineItemSource, TERMINAL_STATUSES
)
from claimdesk.models.vehicle_values import VehicleValues, VARIANTS
from claimdesk.models.audit_log import AuditLog, AuditAction

__all__ = [
    'Client', 'Assessment',
    'LineItem', 'LineItemAction', 'LineItemStatus', 'LineItemSource', 'TERMINAL_STATUSES',
    'VehicleValues', 'VARIANTS',
    'AuditLog', 'AuditAction',
]
