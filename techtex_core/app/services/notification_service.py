"""
Notification reconciliation.

Each pass derives the notifications that should exist right now from the
fabric ledger and merges them into the stored list:

- new ids are inserted unread and emailed once, at insertion
- stored ids that are no longer derived are pruned
- ids present on both sides keep their read flag and creation time
"""

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional

from ..schemas import Fabric, Notification, NotificationType, UsageStatus, UsageTransaction
from .clock import Clock
from .inventory_service import LOW_STOCK_THRESHOLD, available_stock

logger = logging.getLogger(__name__)

SHIPMENT_REMINDER_DAYS = 5
ADMIN_EMAIL = os.getenv("TECHTEX_ADMIN_EMAIL", "techtexbangladesh@gmail.com")


def low_stock_id(fabric_id: str) -> str:
    return f"low-stock-{fabric_id}"


def pending_id(transaction_id: str) -> str:
    return f"pending-{transaction_id}"


def shipment_id(transaction_id: str) -> str:
    return f"shipment-{transaction_id}"


def build_candidates(fabrics: Iterable[Fabric], today: date, now: datetime) -> List[Notification]:
    """Notifications whose triggering condition currently holds."""
    reminder_until = today + timedelta(days=SHIPMENT_REMINDER_DAYS)
    candidates: List[Notification] = []

    for fabric in fabrics:
        if fabric.is_deleted:
            continue

        stock = available_stock(fabric)
        if stock < LOW_STOCK_THRESHOLD:
            candidates.append(Notification(
                id=low_stock_id(fabric.id),
                type=NotificationType.LOW_STOCK,
                message=f"Stock for {fabric.code} is low ({stock:.2f} m²).",
                created_at=now,
                related_fabric_id=fabric.id,
            ))

        for tx in fabric.usages():
            if tx.is_deleted:
                continue
            if tx.status == UsageStatus.PENDING:
                candidates.append(Notification(
                    id=pending_id(tx.id),
                    type=NotificationType.PENDING_APPROVAL,
                    message=f"New usage request for {fabric.code} from {tx.client_name}.",
                    created_at=tx.date,
                    related_fabric_id=fabric.id,
                    related_transaction_id=tx.id,
                ))
            if today <= tx.shipment_date <= reminder_until:
                candidates.append(Notification(
                    id=shipment_id(tx.id),
                    type=NotificationType.SHIPMENT_REMINDER,
                    message=(
                        f"Shipment for order {tx.order_number} ({fabric.code}) "
                        f"is due on {tx.shipment_date.isoformat()}."
                    ),
                    created_at=now,
                    related_fabric_id=fabric.id,
                    related_transaction_id=tx.id,
                ))

    return candidates


@dataclass
class ReconcileResult:
    notifications: List[Notification]
    inserted: List[Notification] = field(default_factory=list)
    pruned: List[Notification] = field(default_factory=list)
    emails: List["OutboundEmail"] = field(default_factory=list)


def reconcile(persisted: Iterable[Notification], candidates: Iterable[Notification]) -> ReconcileResult:
    """
    Merge the candidate set into the stored notifications.

    Stored order is kept and new notifications are appended. A notification
    found on both sides takes the candidate's message, so a low-stock
    message always shows the current stock, and keeps the stored read flag
    and creation time.
    """
    by_id: Dict[str, Notification] = {}
    for n in candidates:
        by_id.setdefault(n.id, n)

    merged: List[Notification] = []
    pruned: List[Notification] = []
    seen = set()
    for stored in persisted:
        candidate = by_id.get(stored.id)
        if candidate is None or stored.id in seen:
            pruned.append(stored)
            continue
        seen.add(stored.id)
        merged.append(candidate.model_copy(update={
            "is_read": stored.is_read,
            "created_at": stored.created_at,
        }))

    inserted: List[Notification] = []
    for notification_id, candidate in by_id.items():
        if notification_id in seen:
            continue
        fresh = candidate.model_copy(update={"is_read": False})
        merged.append(fresh)
        inserted.append(fresh)

    return ReconcileResult(notifications=merged, inserted=inserted, pruned=pruned)


# =============================================================================
# EMAIL
# =============================================================================

@dataclass(frozen=True)
class OutboundEmail:
    recipient: str
    subject: str
    body: str


def render_email(notification: Notification, fabric: Optional[Fabric], recipient: str = ADMIN_EMAIL) -> OutboundEmail:
    code = fabric.code if fabric else "N/A"
    tx: Optional[UsageTransaction] = None
    if fabric and notification.related_transaction_id:
        tx = next((u for u in fabric.usages() if u.id == notification.related_transaction_id), None)

    if notification.type == NotificationType.LOW_STOCK:
        subject = f"Low Stock Alert – Fabric Code: {code}"
        body = (
            "Dear Sir,\n\n"
            f"This is to inform you that the stock for fabric code {code} has fallen below the minimum threshold.\n\n"
            f"Current Stock: Less than {LOW_STOCK_THRESHOLD} m²\n\n"
            "Kindly take necessary action to replenish the stock at the earliest to avoid any disruption in production.\n\n"
            "Thank you for your prompt attention."
        )
    elif notification.type == NotificationType.PENDING_APPROVAL:
        subject = f"Pending Approval for Fabric Usage: {code}"
        quantity = f"{tx.total_fabric_used:.2f}" if tx else "N/A"
        body = (
            "Dear Sir,\n\n"
            "A new fabric usage entry requires your approval.\n\n"
            f"Fabric Code: {code}\n"
            "Entry Details:\n"
            f" - Machine: {tx.machine_name_and_capacity if tx else 'N/A'}\n"
            f" - Drawing: {tx.drawing_number if tx else 'N/A'}\n"
            f" - Order: {tx.order_number if tx else 'N/A'}\n"
            f" - PO: {tx.po_number if tx else 'N/A'}\n"
            f" - Quantity: {quantity} m²\n\n"
            "Please review and take action in the Admin Panel.\n\n"
            "Thank you."
        )
    elif notification.type == NotificationType.SHIPMENT_REMINDER:
        subject = f"Shipment Reminder – Fabric Code: {code}"
        body = (
            "Dear Sir,\n\n"
            "This is a reminder for an upcoming shipment.\n\n"
            f"Fabric Code: {code}\n"
            f"Shipment Date: {tx.shipment_date.isoformat() if tx else 'N/A'}\n\n"
            "Thank you."
        )
    else:
        raise ValueError(f"Unknown notification type: {notification.type}")

    return OutboundEmail(recipient=recipient, subject=subject, body=body)


class EmailSender(ABC):
    """Mail transport plug-in, called once per newly inserted notification."""

    @abstractmethod
    def send(self, email: OutboundEmail) -> None:
        ...


class LoggingEmailSender(EmailSender):
    """Simulated transport: writes the email to the log instead of delivering it."""

    def send(self, email: OutboundEmail) -> None:
        logger.info(
            "--- SIMULATING EMAIL to %s ---\nSubject: %s\nBody:\n%s\n%s",
            email.recipient, email.subject, email.body, "-" * 42,
        )


class NotificationService:
    """Runs reconciliation passes and emits email for inserted notifications."""

    def __init__(self, clock: Clock, sender: Optional[EmailSender] = None, recipient: str = ADMIN_EMAIL):
        self.clock = clock
        self.sender = sender or LoggingEmailSender()
        self.recipient = recipient

    def prepare(self, fabrics: List[Fabric], persisted: List[Notification]) -> ReconcileResult:
        """Reconcile and render one email per inserted notification, without sending."""
        candidates = build_candidates(fabrics, self.clock.today(), self.clock.now())
        result = reconcile(persisted, candidates)

        fabrics_by_id = {f.id: f for f in fabrics}
        result.emails = [
            render_email(n, fabrics_by_id.get(n.related_fabric_id), self.recipient)
            for n in result.inserted
        ]
        if result.inserted or result.pruned:
            logger.info(
                "Notifications reconciled: %d inserted, %d pruned, %d live",
                len(result.inserted), len(result.pruned), len(result.notifications),
            )
        return result

    def deliver(self, result: ReconcileResult) -> None:
        for email in result.emails:
            self.sender.send(email)

    def run(self, fabrics: List[Fabric], persisted: List[Notification]) -> ReconcileResult:
        result = self.prepare(fabrics, persisted)
        self.deliver(result)
        return result
