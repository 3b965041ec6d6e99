import datetime as dt
from enum import Enum
from typing import Optional, List, Literal, Union

from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field, computed_field
from pydantic.alias_generators import to_camel
from typing_extensions import Annotated


ROLE_ADMIN = "Admin"
ROLE_USER = "User"


class FabricCategory(str, Enum):
    WOVEN = "Woven"
    NON_WOVEN = "Non-woven"


class UsageStatus(str, Enum):
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    REJECTED = "Rejected"


class NotificationType(str, Enum):
    LOW_STOCK = "low_stock"
    PENDING_APPROVAL = "pending_approval"
    SHIPMENT_REMINDER = "shipment_reminder"


def as_utc(value: dt.datetime) -> dt.datetime:
    """Naive timestamps are read as UTC, as the browser's toISOString() writes them."""
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value


# every stored timestamp is timezone-aware
Timestamp = Annotated[dt.datetime, AfterValidator(as_utc)]


class CamelModel(BaseModel):
    """Base for every document stored in the snapshot.

    Fields are snake_case in Python and camelCase on the wire, which keeps the
    stored JSON compatible with the browser build's localStorage format.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# SNAPSHOT DOCUMENTS
# =============================================================================

class SoftDeletable(CamelModel):
    """Soft-delete capability shared by fabrics and usage transactions."""
    is_deleted: bool = False
    deleted_by: Optional[str] = None
    deleted_at: Optional[Timestamp] = None
    deletion_reason: Optional[str] = None

    def mark_deleted(self, by: str, at: dt.datetime, reason: Optional[str] = None) -> None:
        self.is_deleted = True
        self.deleted_by = by
        self.deleted_at = at
        self.deletion_reason = reason

    def clear_deletion(self) -> None:
        self.is_deleted = False
        self.deleted_by = None
        self.deleted_at = None
        self.deletion_reason = None


class BagEntry(CamelModel):
    size: str
    quantity: int = Field(0, ge=0)


class PurchaseTransaction(CamelModel):
    id: str
    type: Literal["purchase"] = "purchase"
    date: Timestamp
    quantity: float = Field(..., gt=0)  # m²
    invoice_number: Optional[str] = None


class UsageTransaction(SoftDeletable):
    id: str
    type: Literal["usage"] = "usage"
    date: Timestamp
    submitted_by: Literal["User", "Admin"]
    client_name: str
    po_number: str
    machine_name_and_capacity: str
    drawing_number: str
    order_number: str
    shipment_date: dt.date
    order_received_date: dt.date
    bags: List[BagEntry] = Field(default_factory=list)
    fabric_consumption_per_piece: float = Field(..., gt=0)  # m² per piece
    status: UsageStatus = UsageStatus.PENDING
    action_by: Optional[str] = None
    action_date: Optional[Timestamp] = None
    original_status_before_delete: Optional[UsageStatus] = None

    @computed_field(alias="totalFabricUsed")
    @property
    def total_fabric_used(self) -> float:
        """Σ bag quantity × consumption per piece, always derived from the bags."""
        return sum(bag.quantity for bag in self.bags) * self.fabric_consumption_per_piece

    @property
    def counts_against_stock(self) -> bool:
        return self.status == UsageStatus.CONFIRMED and not self.is_deleted

    def mark_deleted(self, by: str, at: dt.datetime, reason: Optional[str] = None) -> None:
        super().mark_deleted(by, at, reason)
        self.original_status_before_delete = self.status

    def clear_deletion(self) -> None:
        super().clear_deletion()
        self.original_status_before_delete = None


Transaction = Annotated[Union[PurchaseTransaction, UsageTransaction], Field(discriminator="type")]


class Fabric(SoftDeletable):
    id: str
    code: str
    name: str
    category: FabricCategory
    initial_stock: float = Field(0, ge=0)  # m²
    transactions: List[Transaction] = Field(default_factory=list)

    def purchases(self) -> List[PurchaseTransaction]:
        return [t for t in self.transactions if isinstance(t, PurchaseTransaction)]

    def usages(self) -> List[UsageTransaction]:
        return [t for t in self.transactions if isinstance(t, UsageTransaction)]


class Notification(CamelModel):
    id: str
    type: NotificationType
    message: str
    is_read: bool = False
    created_at: Timestamp
    related_fabric_id: str
    related_transaction_id: Optional[str] = None


class Snapshot(CamelModel):
    fabrics: List[Fabric] = Field(default_factory=list)
    notifications: List[Notification] = Field(default_factory=list)


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class FabricIn(CamelModel):
    code: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=200)
    category: FabricCategory = FabricCategory.WOVEN
    initial_stock: float = Field(0, ge=0)


class FabricUpdate(CamelModel):
    code: Optional[str] = Field(None, min_length=1, max_length=50)
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    category: Optional[FabricCategory] = None
    initial_stock: Optional[float] = Field(None, ge=0)


class PurchaseIn(CamelModel):
    quantity: float = Field(..., gt=0)
    invoice_number: Optional[str] = None
    date: Optional[Timestamp] = None


class UsageIn(CamelModel):
    client_name: str = Field(..., min_length=1)
    po_number: Optional[str] = None
    machine_name_and_capacity: str = Field(..., min_length=1)
    drawing_number: str = Field(..., min_length=1)
    order_number: str = Field(..., min_length=1)
    shipment_date: dt.date
    order_received_date: dt.date
    bags: List[BagEntry] = Field(..., min_length=1)
    fabric_consumption_per_piece: float = Field(..., gt=0)


class DeletionIn(CamelModel):
    reason: Optional[str] = None


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class FabricSummaryOut(CamelModel):
    id: str
    code: str
    name: str
    category: FabricCategory
    initial_stock: float
    available_stock: float
    is_low_stock: bool
    is_deleted: bool = False


class FabricDetailOut(FabricSummaryOut):
    purchases: List[PurchaseTransaction] = []
    usages: List[UsageTransaction] = []


class UsageRowOut(UsageTransaction):
    """A usage transaction listed outside its fabric, as the admin panel shows it."""
    fabric_id: str
    fabric_code: str


class RecycleBinOut(CamelModel):
    fabrics: List[Fabric] = []
    transactions: List[UsageRowOut] = []


class NotificationListOut(CamelModel):
    unread_count: int
    notifications: List[Notification] = []


# =============================================================================
# USERS
# =============================================================================

class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    role: str = ROLE_USER


class UserCreate(BaseModel):
    full_name: str
    email: EmailStr
    username: str
    password: str = Field(..., min_length=6)
    role: Literal["Admin", "User"] = ROLE_USER


class ChangePasswordIn(BaseModel):
    old_password: str
    new_password: str = Field(..., min_length=6)


class UserOut(BaseModel):
    id: int
    full_name: str
    email: EmailStr
    username: str
    role: str
    is_active: bool = True
    created_at: dt.datetime

    model_config = ConfigDict(from_attributes=True)
