"""
Fabric Inventory Service
========================
Stock derivation and the usage approval workflow.

- Available stock is always derived from the ledger, never stored
- Usage only reduces stock once Confirmed and not soft-deleted
- Workflow transitions are plain mutations that report whether they applied;
  permission and state preconditions belong to the caller (the store)
"""

import logging
from datetime import datetime
from typing import Iterable, List, Optional, Union

from ..schemas import (
    Fabric, UsageTransaction, PurchaseTransaction, BagEntry, UsageStatus,
)

logger = logging.getLogger(__name__)

LOW_STOCK_THRESHOLD = 20  # m²
DEFAULT_DELETION_REASON = "Deleted directly without prompt"


class InventoryError(Exception):
    """Base exception for inventory operations"""
    pass


class FabricNotFoundError(InventoryError):
    """Raised when a fabric id does not exist"""
    pass


class TransactionNotFoundError(InventoryError):
    """Raised when a transaction id does not exist on the fabric"""
    pass


class DuplicateFabricCodeError(InventoryError):
    """Raised when a fabric code is already in use"""
    pass


class NotificationNotFoundError(InventoryError):
    """Raised when a notification id does not exist"""
    pass


class InsufficientStockError(InventoryError):
    """Raised when a usage request exceeds the available stock"""
    pass


class InvalidOperationError(InventoryError):
    """Raised when an operation is not allowed in the current state"""
    pass


# =============================================================================
# STOCK CALCULATION
# =============================================================================

def total_used(bags: Iterable[BagEntry], consumption_per_piece: float) -> float:
    """Fabric consumed by a usage request: Σ bag quantity × consumption per piece."""
    return sum(bag.quantity for bag in bags) * consumption_per_piece


def available_stock(fabric: Fabric) -> float:
    """
    Derive the current available stock of a fabric lot.

    initial stock + all purchases - confirmed, non-deleted usage. The result
    is not clamped and can go negative if usage was approved beyond stock.
    """
    purchased = 0.0
    used = 0.0
    for tx in fabric.transactions:
        if isinstance(tx, PurchaseTransaction):
            purchased += tx.quantity
        elif isinstance(tx, UsageTransaction):
            if tx.counts_against_stock:
                used += tx.total_fabric_used
        else:
            raise TypeError(f"Unknown transaction type: {type(tx).__name__}")
    return fabric.initial_stock + purchased - used


def is_low_stock(fabric: Fabric, threshold: float = LOW_STOCK_THRESHOLD) -> bool:
    return available_stock(fabric) < threshold


# =============================================================================
# USAGE WORKFLOW
# =============================================================================

class UsageWorkflow:
    """
    State machine for a usage transaction.

    Approval:  Pending -> Confirmed | Rejected
    Deletion:  is_deleted False -> True -> False, at any approval state

    Every transition returns True when it changed the transaction and False
    when it was a no-op because the transaction was not in the source state.
    """

    @staticmethod
    def approve(tx: UsageTransaction, by: str, at: datetime) -> bool:
        return UsageWorkflow._decide(tx, UsageStatus.CONFIRMED, by, at)

    @staticmethod
    def reject(tx: UsageTransaction, by: str, at: datetime) -> bool:
        return UsageWorkflow._decide(tx, UsageStatus.REJECTED, by, at)

    @staticmethod
    def _decide(tx: UsageTransaction, status: UsageStatus, by: str, at: datetime) -> bool:
        if tx.status != UsageStatus.PENDING:
            return False
        tx.status = status
        tx.action_by = by
        tx.action_date = at
        logger.info("Usage %s %s by %s", tx.id, status.value, by)
        return True

    @staticmethod
    def soft_delete(
        record: Union[UsageTransaction, Fabric],
        by: str,
        at: datetime,
        reason: Optional[str] = None,
    ) -> bool:
        """
        Soft-delete a usage transaction or a fabric.

        The approval status is kept; a usage also remembers it in
        ``original_status_before_delete`` so restore brings back exactly the
        record that was deleted.
        """
        if record.is_deleted:
            return False
        record.mark_deleted(by, at, reason or DEFAULT_DELETION_REASON)
        logger.info("%s %s deleted by %s", type(record).__name__, record.id, by)
        return True

    @staticmethod
    def restore(record: Union[UsageTransaction, Fabric]) -> bool:
        if not record.is_deleted:
            return False
        record.clear_deletion()
        logger.info("%s %s restored", type(record).__name__, record.id)
        return True


def find_usage(fabric: Fabric, transaction_id: str) -> UsageTransaction:
    for tx in fabric.transactions:
        if tx.id == transaction_id:
            if not isinstance(tx, UsageTransaction):
                raise InvalidOperationError(f"Transaction {transaction_id} is not a usage request")
            return tx
    raise TransactionNotFoundError(f"Transaction {transaction_id} not found on fabric {fabric.code}")


def usages_with_status(fabrics: Iterable[Fabric], status: UsageStatus) -> List[tuple]:
    """(fabric, usage) pairs for non-deleted usages in ``status``, newest first."""
    rows = [
        (fabric, tx)
        for fabric in fabrics
        for tx in fabric.usages()
        if not tx.is_deleted and tx.status == status
    ]
    rows.sort(key=lambda row: row[1].date, reverse=True)
    return rows
