"""Models package - exports all SQLAlchemy models."""
from franchise_pos.models.product import Product
from franchise_pos.models.sale import Sale, SaleStatus, can_transition
from franchise_pos.models.sale_item import SaleItem
from franchise_pos.models.audit_log import AuditLog, AuditAction
from franchise_pos.models.daily_close import DailyClose

__all__ = [
    'Product',
    'Sale', 'SaleStatus', 'can_transition', 'SaleItem',
    'AuditLog', 'AuditAction',
    'DailyClose',
]
