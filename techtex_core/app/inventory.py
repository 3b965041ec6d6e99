from fastapi import APIRouter, Depends, HTTPException, Query
from typing import List, Optional

from . import models, schemas
from .deps import get_current_user, get_store, require_role, service_error
from .services import InventoryError, InventoryStore, available_stock, LOW_STOCK_THRESHOLD

router = APIRouter(prefix="/fabrics", tags=["fabrics"])


def fabric_summary(fabric: schemas.Fabric) -> schemas.FabricSummaryOut:
    stock = available_stock(fabric)
    return schemas.FabricSummaryOut(
        id=fabric.id,
        code=fabric.code,
        name=fabric.name,
        category=fabric.category,
        initial_stock=fabric.initial_stock,
        available_stock=stock,
        is_low_stock=stock < LOW_STOCK_THRESHOLD,
        is_deleted=fabric.is_deleted,
    )


def fabric_detail(fabric: schemas.Fabric) -> schemas.FabricDetailOut:
    summary = fabric_summary(fabric)
    return schemas.FabricDetailOut(
        **summary.model_dump(),
        purchases=fabric.purchases(),
        usages=fabric.usages(),
    )


@router.get("/", response_model=List[schemas.FabricSummaryOut])
def list_fabrics(
    category: Optional[schemas.FabricCategory] = Query(None),
    search: Optional[str] = Query(None, description="Case-insensitive fabric code filter"),
    store: InventoryStore = Depends(get_store),
    current_user: models.User = Depends(get_current_user),
):
    """Dashboard listing: non-deleted fabrics with their available stock."""
    return [fabric_summary(f) for f in store.list_fabrics(category=category, search=search)]


@router.post("/", response_model=schemas.FabricSummaryOut, status_code=201)
def create_fabric(fabric_in: schemas.FabricIn, store: InventoryStore = Depends(get_store), current_user: models.User = Depends(get_current_user)):
    try:
        fabric = store.create_fabric(fabric_in)
    except InventoryError as e:
        raise service_error(e)
    return fabric_summary(fabric)


@router.get("/{fabric_id}", response_model=schemas.FabricDetailOut)
def get_fabric(fabric_id: str, store: InventoryStore = Depends(get_store), current_user: models.User = Depends(get_current_user)):
    """Traceability view: every purchase and usage recorded on the fabric."""
    try:
        fabric = store.get_fabric(fabric_id)
    except InventoryError as e:
        raise service_error(e)
    if fabric.is_deleted and current_user.role != schemas.ROLE_ADMIN:
        raise HTTPException(status_code=404, detail=f"Fabric {fabric_id} not found")
    return fabric_detail(fabric)


@router.put("/{fabric_id}", response_model=schemas.FabricSummaryOut)
def update_fabric(fabric_id: str, fabric_in: schemas.FabricUpdate, store: InventoryStore = Depends(get_store), current_user: models.User = Depends(get_current_user)):
    try:
        fabric = store.update_fabric(fabric_id, fabric_in, role=current_user.role)
    except InventoryError as e:
        raise service_error(e)
    return fabric_summary(fabric)


@router.delete("/{fabric_id}", response_model=schemas.FabricSummaryOut)
def delete_fabric(
    fabric_id: str,
    deletion: Optional[schemas.DeletionIn] = None,
    store: InventoryStore = Depends(get_store),
    current_user: models.User = Depends(require_role(schemas.ROLE_ADMIN)),
):
    try:
        fabric = store.delete_fabric(fabric_id, by=current_user.username, reason=deletion.reason if deletion else None)
    except InventoryError as e:
        raise service_error(e)
    return fabric_summary(fabric)


@router.post("/{fabric_id}/restore", response_model=schemas.FabricSummaryOut)
def restore_fabric(fabric_id: str, store: InventoryStore = Depends(get_store), current_user: models.User = Depends(require_role(schemas.ROLE_ADMIN))):
    try:
        fabric = store.restore_fabric(fabric_id)
    except InventoryError as e:
        raise service_error(e)
    return fabric_summary(fabric)


# =============================================================================
# LEDGER
# =============================================================================

@router.post("/{fabric_id}/purchases", response_model=schemas.PurchaseTransaction, status_code=201)
def record_purchase(fabric_id: str, purchase_in: schemas.PurchaseIn, store: InventoryStore = Depends(get_store), current_user: models.User = Depends(get_current_user)):
    try:
        return store.record_purchase(fabric_id, purchase_in)
    except InventoryError as e:
        raise service_error(e)


@router.post("/{fabric_id}/usages", response_model=schemas.UsageTransaction, status_code=201)
def record_usage(fabric_id: str, usage_in: schemas.UsageIn, store: InventoryStore = Depends(get_store), current_user: models.User = Depends(get_current_user)):
    """Submit a usage request. It stays Pending until an admin acts on it."""
    try:
        return store.record_usage(fabric_id, usage_in, submitted_by=current_user.role)
    except InventoryError as e:
        raise service_error(e)


@router.post("/{fabric_id}/usages/{transaction_id}/approve", response_model=schemas.UsageTransaction)
def approve_usage(fabric_id: str, transaction_id: str, store: InventoryStore = Depends(get_store), current_user: models.User = Depends(require_role(schemas.ROLE_ADMIN))):
    try:
        return store.approve_usage(fabric_id, transaction_id, by=current_user.username)
    except InventoryError as e:
        raise service_error(e)


@router.post("/{fabric_id}/usages/{transaction_id}/reject", response_model=schemas.UsageTransaction)
def reject_usage(fabric_id: str, transaction_id: str, store: InventoryStore = Depends(get_store), current_user: models.User = Depends(require_role(schemas.ROLE_ADMIN))):
    try:
        return store.reject_usage(fabric_id, transaction_id, by=current_user.username)
    except InventoryError as e:
        raise service_error(e)


@router.delete("/{fabric_id}/usages/{transaction_id}", response_model=schemas.UsageTransaction)
def delete_usage(
    fabric_id: str,
    transaction_id: str,
    deletion: Optional[schemas.DeletionIn] = None,
    store: InventoryStore = Depends(get_store),
    current_user: models.User = Depends(require_role(schemas.ROLE_ADMIN)),
):
    try:
        return store.delete_usage(fabric_id, transaction_id, by=current_user.username, reason=deletion.reason if deletion else None)
    except InventoryError as e:
        raise service_error(e)


@router.post("/{fabric_id}/usages/{transaction_id}/restore", response_model=schemas.UsageTransaction)
def restore_usage(fabric_id: str, transaction_id: str, store: InventoryStore = Depends(get_store), current_user: models.User = Depends(require_role(schemas.ROLE_ADMIN))):
    try:
        return store.restore_usage(fabric_id, transaction_id)
    except InventoryError as e:
        raise service_error(e)
