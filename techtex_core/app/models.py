from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean
from .db import Base


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    username = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    role = Column(String, nullable=False)  # "Admin" or "User"
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class StorageEntry(Base):
    """Key/value store holding the JSON snapshot documents.

    Each key is overwritten in full on every change, the same way the browser
    build kept its state under localStorage keys.
    """
    __tablename__ = "storage_entries"
    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
