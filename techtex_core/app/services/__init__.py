"""
Services package initialization.
Business logic layer for fabric inventory operations.
"""

from .clock import Clock, SystemClock, FixedClock
from .inventory_service import (
    UsageWorkflow,
    InventoryError,
    FabricNotFoundError,
    TransactionNotFoundError,
    NotificationNotFoundError,
    DuplicateFabricCodeError,
    InsufficientStockError,
    InvalidOperationError,
    LOW_STOCK_THRESHOLD,
    available_stock,
    is_low_stock,
    total_used,
)
from .notification_service import (
    NotificationService,
    EmailSender,
    LoggingEmailSender,
    OutboundEmail,
    build_candidates,
    reconcile,
    render_email,
)
from .store import InventoryStore, SnapshotRepository

__all__ = [
    'Clock',
    'SystemClock',
    'FixedClock',
    'UsageWorkflow',
    'InventoryError',
    'FabricNotFoundError',
    'TransactionNotFoundError',
    'NotificationNotFoundError',
    'DuplicateFabricCodeError',
    'InsufficientStockError',
    'InvalidOperationError',
    'LOW_STOCK_THRESHOLD',
    'available_stock',
    'is_low_stock',
    'total_used',
    'NotificationService',
    'EmailSender',
    'LoggingEmailSender',
    'OutboundEmail',
    'build_candidates',
    'reconcile',
    'render_email',
    'InventoryStore',
    'SnapshotRepository',
]
