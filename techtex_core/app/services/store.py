"""
Inventory Store
===============
Single owner of the fabric list and the notification list.

Every mutation goes through a store method, which then re-runs the
notification pass and writes the whole snapshot back: the fabric list and
the notification list, each stored as one JSON document.
"""

import logging
from datetime import timedelta
from typing import Dict, List, Optional, Tuple

from pydantic import TypeAdapter
from sqlalchemy.orm import Session

from ..models import StorageEntry
from ..schemas import (
    Fabric, FabricCategory, FabricIn, FabricUpdate, Notification, PurchaseIn,
    PurchaseTransaction, Snapshot, UsageIn, UsageStatus, UsageTransaction,
    ROLE_ADMIN, ROLE_USER,
)
from .clock import Clock, SystemClock
from .inventory_service import (
    DuplicateFabricCodeError, FabricNotFoundError, InsufficientStockError,
    InvalidOperationError, NotificationNotFoundError, UsageWorkflow, available_stock, find_usage,
    total_used, usages_with_status,
)
from .notification_service import NotificationService

logger = logging.getLogger(__name__)

FABRICS_KEY = "techtex-fabrics"
NOTIFICATIONS_KEY = "techtex-notifications"
RECYCLE_BIN_DAYS = 30

FabricList = TypeAdapter(List[Fabric])
NotificationList = TypeAdapter(List[Notification])


class SnapshotRepository:
    """Reads and overwrites the two snapshot documents."""

    def __init__(self, db: Session):
        self.db = db

    def _get(self, key: str) -> Optional[str]:
        entry = self.db.get(StorageEntry, key)
        return entry.value if entry else None

    def _put(self, key: str, value: str) -> None:
        entry = self.db.get(StorageEntry, key)
        if entry is None:
            entry = StorageEntry(key=key, value=value)
            self.db.add(entry)
        else:
            entry.value = value

    def load(self) -> Tuple[List[Fabric], List[Notification]]:
        raw_fabrics = self._get(FABRICS_KEY)
        raw_notifications = self._get(NOTIFICATIONS_KEY)
        fabrics = FabricList.validate_json(raw_fabrics) if raw_fabrics else []
        notifications = NotificationList.validate_json(raw_notifications) if raw_notifications else []
        return fabrics, notifications

    def save(self, fabrics: List[Fabric], notifications: List[Notification]) -> None:
        try:
            self._put(FABRICS_KEY, FabricList.dump_json(fabrics, by_alias=True).decode("utf-8"))
            self._put(NOTIFICATIONS_KEY, NotificationList.dump_json(notifications, by_alias=True).decode("utf-8"))
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.debug("Snapshot saved: %d fabrics, %d notifications", len(fabrics), len(notifications))


class InventoryStore:
    """Controller for every inventory operation."""

    def __init__(
        self,
        repository: SnapshotRepository,
        clock: Optional[Clock] = None,
        notifier: Optional[NotificationService] = None,
    ):
        self.repository = repository
        self.clock = clock or SystemClock()
        self.notifier = notifier or NotificationService(self.clock)
        self.fabrics, self.notifications = repository.load()

    # -------------------------------------------------------------------------
    # internals
    # -------------------------------------------------------------------------

    def _commit(self) -> None:
        result = self.notifier.prepare(self.fabrics, self.notifications)
        self.repository.save(self.fabrics, result.notifications)
        # emails go out only once the inserted notifications are saved
        self.notifications = result.notifications
        self.notifier.deliver(result)

    def _new_id(self, prefix: str) -> str:
        """Millisecond timestamp ids, bumped past any id already taken."""
        taken = {f.id for f in self.fabrics}
        taken.update(tx.id for f in self.fabrics for tx in f.transactions)
        millis = self.clock.epoch_millis()
        while f"{prefix}-{millis}" in taken:
            millis += 1
        return f"{prefix}-{millis}"

    def _check_code_free(self, code: str, exclude_id: Optional[str] = None) -> None:
        for f in self.fabrics:
            if f.id != exclude_id and f.code.lower() == code.lower():
                raise DuplicateFabricCodeError(f"Fabric code {code} is already in use")

    def get_fabric(self, fabric_id: str) -> Fabric:
        for f in self.fabrics:
            if f.id == fabric_id:
                return f
        raise FabricNotFoundError(f"Fabric {fabric_id} not found")

    def _active_fabric(self, fabric_id: str) -> Fabric:
        fabric = self.get_fabric(fabric_id)
        if fabric.is_deleted:
            raise InvalidOperationError(f"Fabric {fabric.code} is deleted")
        return fabric

    # -------------------------------------------------------------------------
    # queries
    # -------------------------------------------------------------------------

    def available_stock(self, fabric_id: str) -> float:
        return available_stock(self.get_fabric(fabric_id))

    def list_fabrics(self, category: Optional[FabricCategory] = None, search: Optional[str] = None) -> List[Fabric]:
        """Dashboard view: non-deleted fabrics, optionally by category and code."""
        result = [f for f in self.fabrics if not f.is_deleted]
        if category:
            result = [f for f in result if f.category == category]
        if search:
            needle = search.lower()
            result = [f for f in result if needle in f.code.lower()]
        return result

    def usages_by_status(self, status: UsageStatus) -> List[Tuple[Fabric, UsageTransaction]]:
        return usages_with_status(self.fabrics, status)

    def recycle_bin(self) -> Tuple[List[Fabric], List[Tuple[Fabric, UsageTransaction]]]:
        """Deleted fabrics, plus usages deleted within the last 30 days."""
        cutoff = self.clock.now() - timedelta(days=RECYCLE_BIN_DAYS)
        deleted_fabrics = [f for f in self.fabrics if f.is_deleted]
        deleted_usages = [
            (fabric, tx)
            for fabric in self.fabrics
            for tx in fabric.usages()
            if tx.is_deleted and tx.deleted_at and tx.deleted_at > cutoff
        ]
        deleted_usages.sort(key=lambda row: row[1].deleted_at, reverse=True)
        return deleted_fabrics, deleted_usages

    def list_notifications(self) -> List[Notification]:
        return sorted(self.notifications, key=lambda n: n.created_at, reverse=True)

    def unread_count(self) -> int:
        return sum(1 for n in self.notifications if not n.is_read)

    def export_snapshot(self) -> Snapshot:
        return Snapshot(fabrics=self.fabrics, notifications=self.notifications)

    # -------------------------------------------------------------------------
    # fabrics
    # -------------------------------------------------------------------------

    def create_fabric(self, data: FabricIn) -> Fabric:
        code = data.code.strip()
        self._check_code_free(code)
        fabric = Fabric(
            id=self._new_id(data.category.value),
            code=code,
            name=data.name.strip(),
            category=data.category,
            initial_stock=data.initial_stock,
        )
        self.fabrics.append(fabric)
        logger.info("Fabric %s created (%s)", fabric.code, fabric.id)
        self._commit()
        return fabric

    def update_fabric(self, fabric_id: str, data: FabricUpdate, role: str = ROLE_USER) -> Fabric:
        fabric = self.get_fabric(fabric_id)
        if data.initial_stock is not None and data.initial_stock != fabric.initial_stock and role != ROLE_ADMIN:
            raise InvalidOperationError("Only an admin can change the initial stock")
        if data.code is not None:
            code = data.code.strip()
            self._check_code_free(code, exclude_id=fabric.id)
            fabric.code = code
        if data.name is not None:
            fabric.name = data.name.strip()
        if data.category is not None:
            fabric.category = data.category
        if data.initial_stock is not None:
            fabric.initial_stock = data.initial_stock
        self._commit()
        return fabric

    def delete_fabric(self, fabric_id: str, by: str, reason: Optional[str] = None) -> Fabric:
        fabric = self.get_fabric(fabric_id)
        if not UsageWorkflow.soft_delete(fabric, by, self.clock.now(), reason):
            raise InvalidOperationError(f"Fabric {fabric.code} is already deleted")
        self._commit()
        return fabric

    def restore_fabric(self, fabric_id: str) -> Fabric:
        fabric = self.get_fabric(fabric_id)
        if not UsageWorkflow.restore(fabric):
            raise InvalidOperationError(f"Fabric {fabric.code} is not deleted")
        self._commit()
        return fabric

    # -------------------------------------------------------------------------
    # ledger
    # -------------------------------------------------------------------------

    def record_purchase(self, fabric_id: str, data: PurchaseIn) -> PurchaseTransaction:
        fabric = self._active_fabric(fabric_id)
        purchase = PurchaseTransaction(
            id=self._new_id("t-p"),
            date=data.date or self.clock.now(),
            quantity=data.quantity,
            invoice_number=data.invoice_number or None,
        )
        fabric.transactions.append(purchase)
        logger.info("Purchase of %.2f m² recorded on %s", purchase.quantity, fabric.code)
        self._commit()
        return purchase

    def record_usage(self, fabric_id: str, data: UsageIn, submitted_by: str = ROLE_USER) -> UsageTransaction:
        """
        Record a usage request in Pending.

        The request must use some fabric and may not exceed what is
        available right now; pending requests are not reserved against it.
        """
        fabric = self._active_fabric(fabric_id)
        po_number = (data.po_number or "").strip()
        if not po_number and submitted_by != ROLE_ADMIN:
            raise InvalidOperationError("PO number is required")

        requested = total_used(data.bags, data.fabric_consumption_per_piece)
        if requested <= 0:
            raise InvalidOperationError("Usage request must consume some fabric")
        stock = available_stock(fabric)
        if requested > stock:
            raise InsufficientStockError(
                f"Insufficient stock for {fabric.code}. "
                f"Available: {stock:.2f} m², Requested: {requested:.2f} m²"
            )

        usage = UsageTransaction(
            id=self._new_id("t-u"),
            date=self.clock.now(),
            submitted_by=ROLE_ADMIN if submitted_by == ROLE_ADMIN else ROLE_USER,
            client_name=data.client_name,
            po_number=po_number,
            machine_name_and_capacity=data.machine_name_and_capacity,
            drawing_number=data.drawing_number,
            order_number=data.order_number,
            shipment_date=data.shipment_date,
            order_received_date=data.order_received_date,
            bags=data.bags,
            fabric_consumption_per_piece=data.fabric_consumption_per_piece,
            status=UsageStatus.PENDING,
        )
        fabric.transactions.append(usage)
        logger.info("Usage request %s (%.2f m²) recorded on %s", usage.id, requested, fabric.code)
        self._commit()
        return usage

    # -------------------------------------------------------------------------
    # approval workflow
    # -------------------------------------------------------------------------

    def _live_usage(self, fabric_id: str, transaction_id: str) -> UsageTransaction:
        tx = find_usage(self._active_fabric(fabric_id), transaction_id)
        if tx.is_deleted:
            raise InvalidOperationError(f"Usage {transaction_id} is deleted; restore it first")
        return tx

    def approve_usage(self, fabric_id: str, transaction_id: str, by: str) -> UsageTransaction:
        tx = self._live_usage(fabric_id, transaction_id)
        if not UsageWorkflow.approve(tx, by, self.clock.now()):
            raise InvalidOperationError(f"Usage {transaction_id} is {tx.status.value}, not Pending")
        self._commit()
        return tx

    def reject_usage(self, fabric_id: str, transaction_id: str, by: str) -> UsageTransaction:
        tx = self._live_usage(fabric_id, transaction_id)
        if not UsageWorkflow.reject(tx, by, self.clock.now()):
            raise InvalidOperationError(f"Usage {transaction_id} is {tx.status.value}, not Pending")
        self._commit()
        return tx

    def delete_usage(self, fabric_id: str, transaction_id: str, by: str, reason: Optional[str] = None) -> UsageTransaction:
        tx = find_usage(self.get_fabric(fabric_id), transaction_id)
        if not UsageWorkflow.soft_delete(tx, by, self.clock.now(), reason):
            raise InvalidOperationError(f"Usage {transaction_id} is already deleted")
        self._commit()
        return tx

    def restore_usage(self, fabric_id: str, transaction_id: str) -> UsageTransaction:
        tx = find_usage(self.get_fabric(fabric_id), transaction_id)
        if not UsageWorkflow.restore(tx):
            raise InvalidOperationError(f"Usage {transaction_id} is not deleted")
        self._commit()
        return tx

    # -------------------------------------------------------------------------
    # notifications & snapshot
    # -------------------------------------------------------------------------

    def refresh_notifications(self) -> List[Notification]:
        """Run a reconciliation pass without any ledger change (e.g. a new day)."""
        self._commit()
        return self.list_notifications()

    def mark_notification_read(self, notification_id: str) -> Notification:
        for n in self.notifications:
            if n.id == notification_id:
                n.is_read = True
                self.repository.save(self.fabrics, self.notifications)
                return n
        raise NotificationNotFoundError(f"Notification {notification_id} not found")

    def mark_all_notifications_read(self) -> int:
        updated = 0
        for n in self.notifications:
            if not n.is_read:
                n.is_read = True
                updated += 1
        self.repository.save(self.fabrics, self.notifications)
        return updated

    def import_snapshot(self, snapshot: Snapshot) -> Dict[str, int]:
        """Replace the whole state with ``snapshot`` (e.g. a browser export)."""
        self.fabrics = list(snapshot.fabrics)
        self.notifications = list(snapshot.notifications)
        logger.info("Snapshot imported: %d fabrics, %d notifications", len(self.fabrics), len(self.notifications))
        self._commit()
        return {"fabrics": len(self.fabrics), "notifications": len(self.notifications)}
