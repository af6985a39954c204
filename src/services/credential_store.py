"""Data access for user accounts and their refresh tokens."""

import logging
from datetime import datetime

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.models.user import User

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    """Lowercase and trim an email address."""
    return email.strip().lower()


class CredentialStore:
    """Reads and writes User rows. Soft-deleted users are never returned."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, user_id: str) -> User | None:
        return (
            self.db.query(User).filter(User.id == user_id, User.deleted_at.is_(None)).first()
        )

    def get_by_email(self, email: str) -> User | None:
        return (
            self.db.query(User)
            .filter(User.email == normalize_email(email), User.deleted_at.is_(None))
            .first()
        )

    def email_exists(self, email: str) -> bool:
        """Check if an email is taken, including by soft-deleted accounts."""
        return (
            self.db.query(User.id).filter(User.email == normalize_email(email)).first() is not None
        )

    def add(self, user: User) -> User:
        try:
            self.db.add(user)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.error(f"Failed to create user {user.email}", exc_info=True)
            raise
        self.db.refresh(user)
        return user

    def save(self, user: User) -> User:
        """Commit pending changes on a user loaded from this store."""
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.error(f"Failed to update user {user.id}", exc_info=True)
            raise
        self.db.refresh(user)
        return user

    def rotate_refresh_token(
        self,
        user_id: str,
        current_token: str,
        new_token: str,
        new_expires_at: datetime,
        now: datetime,
    ) -> bool:
        """Replace the refresh token only if the caller presented the live one.

        The check and the write are a single UPDATE, so of two concurrent
        refreshes with the same token exactly one succeeds.
        """
        try:
            result = self.db.execute(
                update(User)
                .where(
                    User.id == user_id,
                    User.deleted_at.is_(None),
                    User.refresh_token == current_token,
                    User.refresh_token_expires_at > now,
                )
                .values(
                    refresh_token=new_token,
                    refresh_token_expires_at=new_expires_at,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.error(f"Failed to rotate refresh token for user {user_id}", exc_info=True)
            raise
        return result.rowcount == 1

    def clear_refresh_token(self, user: User) -> User:
        user.refresh_token = None
        user.refresh_token_expires_at = None
        return self.save(user)
