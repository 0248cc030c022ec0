"""
User accounts for signup/login, stored with SQLAlchemy.

Passwords are kept only as werkzeug salted hashes.
"""

from __future__ import annotations

import logging

from sqlalchemy import Column, Integer, String, create_engine, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from werkzeug.security import check_password_hash, generate_password_hash

logger = logging.getLogger(__name__)

Base = declarative_base()


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=False)


class EmailExistsError(Exception):
    pass


def normalise_email(email: str) -> str:
    return (email or "").strip().lower()


class UserStore:
    def __init__(self, database_url: str = "sqlite://"):
        kwargs = {}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection, or every session would see an empty database
            kwargs = {
                "connect_args": {"check_same_thread": False},
                "poolclass": StaticPool,
            }
        self.engine = create_engine(database_url, echo=False, **kwargs)
        self.SessionLocal = sessionmaker(bind=self.engine)
        Base.metadata.create_all(bind=self.engine)

    def create_user(self, email: str, password: str) -> str:
        """Store a new account and return its email; duplicate emails are rejected."""
        email = normalise_email(email)
        with self.SessionLocal() as session:
            existing = session.execute(
                select(User.id).where(User.email == email)
            ).first()
            if existing is not None:
                raise EmailExistsError(email)

            session.add(
                User(
                    email=email,
                    password_hash=generate_password_hash(password, method="pbkdf2:sha256"),
                )
            )
            try:
                session.commit()
            except IntegrityError as exc:
                # Lost a race with a concurrent signup for the same email
                session.rollback()
                raise EmailExistsError(email) from exc

        logger.info("Created account for %s", email)
        return email

    def authenticate(self, email: str, password: str) -> str | None:
        """Return the account email when the password matches, else None."""
        email = normalise_email(email)
        with self.SessionLocal() as session:
            user = session.execute(
                select(User).where(User.email == email)
            ).scalar_one_or_none()
            if user is None:
                return None
            if not check_password_hash(user.password_hash, password or ""):
                return None
            return user.email

    def count(self) -> int:
        with self.SessionLocal() as session:
            return len(session.execute(select(User.id)).all())
