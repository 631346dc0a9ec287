# app/crud.py
from sqlalchemy.orm import Session
from . import models
from .core.security import get_password_hash


def get_user_by_email(db: Session, email: str):
    return db.query(models.User).filter(models.User.email == email).first()


def get_user(db: Session, user_id: int):
    return db.get(models.User, user_id)


def get_password_user_by_email(db: Session, email: str):
    return (
        db.query(models.User)
        .filter(models.User.email == email, models.User.password_hash.isnot(None))
        .first()
    )


def create_user(db: Session, email: str, password: str):
    db_user = models.User(
        email=email,
        password_hash=get_password_hash(password),
    )
    db.add(db_user)
    db.commit()
    db.refresh(db_user)
    return db_user


def create_google_user(db: Session, email: str, google_id: str):
    db_user = models.User(
        email=email,
        password_hash=None,
        google_id=google_id,
    )
    db.add(db_user)
    db.commit()
    db.refresh(db_user)
    return db_user


def link_google_id(db: Session, user: models.User, google_id: str):
    user.google_id = google_id
    db.commit()
    db.refresh(user)
    return user


def update_password(db: Session, email: str, password: str) -> int:
    updated = (
        db.query(models.User)
        .filter(models.User.email == email)
        .update({models.User.password_hash: get_password_hash(password)}, synchronize_session=False)
    )
    db.commit()
    return updated
