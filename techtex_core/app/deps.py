import os
import hashlib
import warnings
from datetime import datetime, timedelta
from typing import Generator

import bcrypt
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from . import models
from .db import SessionLocal
from .services import (
    InventoryStore, SnapshotRepository, NotificationService, SystemClock, Clock,
    EmailSender, LoggingEmailSender, InventoryError, FabricNotFoundError,
    TransactionNotFoundError, NotificationNotFoundError, DuplicateFabricCodeError,
)


def get_secret_key() -> str:
    """
    Get secret key from environment with proper validation.
    NEVER use default secret keys in production!
    """
    secret = os.getenv("TECHTEX_SECRET_KEY")

    if not secret:
        env = os.getenv("ENVIRONMENT", "development")
        if env == "production":
            raise RuntimeError(
                "CRITICAL: Secret key must be set in production! "
                "Set TECHTEX_SECRET_KEY environment variable."
            )
        warnings.warn(
            "No secret key set! Using development key. "
            "Set TECHTEX_SECRET_KEY for production.",
            RuntimeWarning
        )
        # deterministic so tokens survive a dev reload
        secret = hashlib.sha256(b"dev-mode-only").hexdigest()

    return secret


SECRET_KEY = get_secret_key()
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("TOKEN_EXPIRE_MINUTES", "60"))

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_clock() -> Clock:
    return SystemClock()


def get_email_sender() -> EmailSender:
    return LoggingEmailSender()


def get_store(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    sender: EmailSender = Depends(get_email_sender),
) -> InventoryStore:
    return InventoryStore(SnapshotRepository(db), clock=clock, notifier=NotificationService(clock, sender))


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))


def get_password_hash(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def create_access_token(data: dict, expires_delta: timedelta | None = None):
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)
    return encoded_jwt


def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)):
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        username: str = payload.get("sub")
        if username is None:
            raise credentials_exception
    except JWTError:
        raise credentials_exception
    user = db.query(models.User).filter(models.User.username == username).first()
    if user is None or not user.is_active:
        raise credentials_exception
    return user


def require_role(*allowed_roles):
    def role_checker(current_user: models.User = Depends(get_current_user)):
        if current_user.role not in allowed_roles:
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return current_user

    return role_checker


def service_error(exc: InventoryError) -> HTTPException:
    """Translate a service-layer exception into the matching HTTP error."""
    if isinstance(exc, (FabricNotFoundError, TransactionNotFoundError, NotificationNotFoundError)):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, DuplicateFabricCodeError):
        return HTTPException(status_code=409, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))
