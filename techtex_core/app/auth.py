import logging
from typing import Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from . import models, schemas
from .deps import get_db, verify_password, get_password_hash, create_access_token, require_role

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


async def read_credentials(request: Request) -> Tuple[Optional[str], Optional[str]]:
    """Username and password from a JSON body or an OAuth2 form body."""
    ctype = (request.headers.get("content-type") or "").lower()
    if "application/json" in ctype:
        try:
            body = await request.json()
        except ValueError:
            return None, None
        if not isinstance(body, dict):
            return None, None
        return body.get("username"), body.get("password")

    form = await request.form()
    return form.get("username"), form.get("password")


def authenticate(db: Session, username: str, password: str) -> Optional[models.User]:
    user = db.query(models.User).filter(models.User.username == username).first()
    if user is None or not user.is_active:
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


@router.post("/login", response_model=schemas.Token)
async def login(request: Request, db: Session = Depends(get_db)):
    username, password = await read_credentials(request)
    if not username or not password:
        raise HTTPException(status_code=400, detail="Missing username or password")

    user = authenticate(db, username, password)
    if user is None:
        logger.warning("Failed login for %s", username)
        raise HTTPException(status_code=400, detail="Incorrect username or password")

    return schemas.Token(access_token=create_access_token({"sub": user.username}), role=user.role)


@router.post("/register", response_model=schemas.UserOut, status_code=201)
def register(user_in: schemas.UserCreate, db: Session = Depends(get_db), current_user: models.User = Depends(require_role(schemas.ROLE_ADMIN))):
    """Admins create operator and admin accounts; there is no self sign-up."""
    clash = db.query(models.User).filter(
        (models.User.username == user_in.username) | (models.User.email == user_in.email)
    ).first()
    if clash:
        raise HTTPException(status_code=409, detail="User with that username or email already exists")

    user = models.User(
        full_name=user_in.full_name,
        email=user_in.email,
        username=user_in.username,
        password_hash=get_password_hash(user_in.password),
        role=user_in.role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("%s registered %s user %s", current_user.username, user.role, user.username)
    return user
