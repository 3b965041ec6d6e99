"""
Admin Panel API
===============
Review queues for usage requests, the recycle bin, and raw snapshot
import/export. Admin role only.
"""

from typing import List

from fastapi import APIRouter, Depends

from .. import models, schemas
from ..deps import get_store, require_role
from ..services import InventoryStore

router = APIRouter(prefix="/admin", tags=["admin"])

admin_only = require_role(schemas.ROLE_ADMIN)


def usage_row(fabric: schemas.Fabric, tx: schemas.UsageTransaction) -> schemas.UsageRowOut:
    return schemas.UsageRowOut(**tx.model_dump(exclude={"total_fabric_used"}), fabric_id=fabric.id, fabric_code=fabric.code)


def _rows(store: InventoryStore, status: schemas.UsageStatus) -> List[schemas.UsageRowOut]:
    return [usage_row(fabric, tx) for fabric, tx in store.usages_by_status(status)]


@router.get("/usages/pending", response_model=List[schemas.UsageRowOut])
def pending_usages(store: InventoryStore = Depends(get_store), current_user: models.User = Depends(admin_only)):
    return _rows(store, schemas.UsageStatus.PENDING)


@router.get("/usages/approved", response_model=List[schemas.UsageRowOut])
def approved_usages(store: InventoryStore = Depends(get_store), current_user: models.User = Depends(admin_only)):
    return _rows(store, schemas.UsageStatus.CONFIRMED)


@router.get("/usages/rejected", response_model=List[schemas.UsageRowOut])
def rejected_usages(store: InventoryStore = Depends(get_store), current_user: models.User = Depends(admin_only)):
    return _rows(store, schemas.UsageStatus.REJECTED)


@router.get("/recycle-bin", response_model=schemas.RecycleBinOut)
def recycle_bin(store: InventoryStore = Depends(get_store), current_user: models.User = Depends(admin_only)):
    """Deleted fabrics and the usage requests deleted in the last 30 days."""
    fabrics, usages = store.recycle_bin()
    return schemas.RecycleBinOut(fabrics=fabrics, transactions=[usage_row(f, tx) for f, tx in usages])


@router.get("/snapshot", response_model=schemas.Snapshot)
def export_snapshot(store: InventoryStore = Depends(get_store), current_user: models.User = Depends(admin_only)):
    return store.export_snapshot()


@router.put("/snapshot")
def import_snapshot(snapshot: schemas.Snapshot, store: InventoryStore = Depends(get_store), current_user: models.User = Depends(admin_only)):
    """Replace all fabrics and notifications, e.g. with a browser localStorage export."""
    return store.import_snapshot(snapshot)
