"""
User Repository

Handles database operations for the user directory.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from app.connections.database import get_db_session
from app.logging.utils import get_app_logger
from app.models.user import User

logger = get_app_logger("app.user_repository")

MUTABLE_PROFILE_FIELDS = frozenset({"first_name", "last_name", "email", "profile_photo", "language"})


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class UserRepository:
    """Repository for user operations. SQLAlchemy errors propagate to the caller."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def get_by_phone(self, phone: str) -> Optional[User]:
        with get_db_session(self.session_factory, read_only=True) as db:
            return db.execute(select(User).where(User.phone == phone)).scalar_one_or_none()

    def get_by_id(self, user_id: int) -> Optional[User]:
        with get_db_session(self.session_factory, read_only=True) as db:
            return db.get(User, user_id)

    def create_verified(self, phone: str, user_type: str = "rider") -> User:
        now = utc_now()
        with get_db_session(self.session_factory) as db:
            user = User(
                phone=phone,
                user_type=user_type,
                is_verified=True,
                is_active=True,
                rating=5.0,
                total_rides=0,
                language="en",
                profile_complete=False,
                created_at=now,
                updated_at=now,
            )
            db.add(user)
            db.flush()
            logger.info(f"create_verified | user_id={user.id} user_type={user_type}")
            return user

    def touch(self, user_id: int) -> Optional[User]:
        with get_db_session(self.session_factory) as db:
            user = db.get(User, user_id)
            if user is None:
                return None
            user.updated_at = utc_now()
            return user

    def update_profile(self, user_id: int, fields: Dict[str, Any]) -> Optional[User]:
        """Apply allow-listed profile fields; a first name marks the profile complete."""
        unknown = set(fields) - MUTABLE_PROFILE_FIELDS
        if unknown:
            raise ValueError(f"Fields not allowed in profile update: {sorted(unknown)}")

        with get_db_session(self.session_factory) as db:
            user = db.get(User, user_id)
            if user is None:
                return None
            for name, value in fields.items():
                setattr(user, name, value)
            if user.first_name:
                user.profile_complete = True
            user.updated_at = utc_now()
            logger.info(f"update_profile | user_id={user_id} fields={sorted(fields)}")
            return user
