"""
User Model
Rider/driver accounts keyed by normalized phone number
"""

from sqlalchemy import Column, Integer, String, Boolean, Numeric, Index
from app.models.common import CommonModel


USER_TYPES = ("rider", "driver")
LANGUAGES = ("en", "ar")


class User(CommonModel):
    """
    User created on the first successful OTP verification for a phone.

    Attributes:
        phone: Normalized international phone (e.g. "+211900000001"), immutable
        user_type: rider or driver
        rating: Average rating, starts at 5.0
        profile_complete: False until a first name has been saved; drives is_new_user
        is_active: Soft-delete flag (declared, not used for filtering yet)
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    phone = Column(String(20), nullable=False, unique=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    email = Column(String(255), nullable=True)
    user_type = Column(String(20), nullable=False, default="rider")
    profile_photo = Column(String(500), nullable=True)
    rating = Column(Numeric(3, 2), nullable=False, default=5.0)
    total_rides = Column(Integer, nullable=False, default=0)
    is_verified = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    language = Column(String(10), nullable=False, default="en")
    profile_complete = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("idx_users_phone", "phone"),
    )

    @property
    def is_new_user(self) -> bool:
        return not self.profile_complete

    def __repr__(self):
        return f"<User(id={self.id}, phone={self.phone}, type={self.user_type}, complete={self.profile_complete})>"
