import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from .deps import get_db, get_current_user, require_role, verify_password, get_password_hash
from . import models, schemas

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=schemas.UserOut)
def me_user(current_user: models.User = Depends(get_current_user)):
    return current_user


@router.post("/change-password")
def change_password(pw: schemas.ChangePasswordIn, db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    if not verify_password(pw.old_password, current_user.password_hash):
        raise HTTPException(status_code=400, detail="Old password is incorrect")
    if pw.new_password == pw.old_password:
        raise HTTPException(status_code=400, detail="New password must differ from the old one")
    current_user.password_hash = get_password_hash(pw.new_password)
    db.commit()
    return {"status": "ok", "message": "Password updated"}


@router.get("/", response_model=List[schemas.UserOut])
def list_users(db: Session = Depends(get_db), current_user: models.User = Depends(require_role(schemas.ROLE_ADMIN))):
    return db.query(models.User).order_by(models.User.username).all()


@router.post("/{user_id}/deactivate", response_model=schemas.UserOut)
def deactivate_user(user_id: int, db: Session = Depends(get_db), current_user: models.User = Depends(require_role(schemas.ROLE_ADMIN))):
    """Blocks login and invalidates the user's outstanding tokens."""
    user = db.get(models.User, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail=f"User {user_id} not found")
    if user.id == current_user.id:
        raise HTTPException(status_code=400, detail="You cannot deactivate your own account")
    user.is_active = False
    db.commit()
    db.refresh(user)
    logger.info("%s deactivated user %s", current_user.username, user.username)
    return user
