"""One-time bootstrap script to create the first Admin user.

Usage:
  python scripts/create_admin.py --username admin --email admin@techtex-bd.com --password secret
Or provide via env: ADMIN_USERNAME, ADMIN_EMAIL, ADMIN_PASSWORD

An existing account with the same username is promoted to Admin and
re-activated instead of being duplicated.
"""
import os
import argparse
from getpass import getpass

from sqlalchemy.orm import Session

from techtex_core.app.db import SessionLocal, create_db_and_tables
from techtex_core.app import models
from techtex_core.app.deps import get_password_hash
from techtex_core.app.schemas import ROLE_ADMIN


def create_admin(db: Session, username: str, email: str, password: str, full_name: str = "Admin"):
    """Return ``(user, created)``."""
    user = db.query(models.User).filter(models.User.username == username).first()
    if user is not None:
        user.role = ROLE_ADMIN
        user.is_active = True
        db.commit()
        return user, False

    user = models.User(
        full_name=full_name,
        email=email,
        username=username,
        password_hash=get_password_hash(password),
        role=ROLE_ADMIN,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user, True


def main():
    parser = argparse.ArgumentParser(description="Create or promote the TechTex Admin account")
    parser.add_argument('--username', default=os.getenv('ADMIN_USERNAME'))
    parser.add_argument('--email', default=os.getenv('ADMIN_EMAIL'))
    parser.add_argument('--password', default=os.getenv('ADMIN_PASSWORD'))
    parser.add_argument('--full-name', default='Admin')
    args = parser.parse_args()

    username = args.username or input('Username: ').strip()
    email = args.email or input('Email: ').strip()
    password = args.password or getpass('Password: ')

    create_db_and_tables()
    db = SessionLocal()
    try:
        user, created = create_admin(db, username, email, password, args.full_name)
    finally:
        db.close()
    print(('Created' if created else 'Promoted existing user to') + ' Admin:', username)


if __name__ == '__main__':
    main()
