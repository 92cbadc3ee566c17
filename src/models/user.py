"""User database model.

This module defines the User database model using SQLAlchemy.
"""

from sqlalchemy import Boolean, Column, JSON, String
from .base import Base


class UserModel(Base):
    """User database model."""

    __tablename__ = "users"

    user_id = Column(String, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    username = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String, nullable=False, default="")
    phone_number = Column(String, nullable=False, default="")
    profile_picture = Column(String, nullable=True)
    password_hash = Column(String, nullable=False)
    role = Column(String, nullable=False)  # 'learner', 'trainer', or 'admin'
    is_banned = Column(Boolean, nullable=False, default=False)
    tokens = Column(JSON, nullable=False, default=list)  # [{"token", "expires_at"}]
    create_at = Column(String, nullable=False)  # ISO format string
    update_at = Column(String, nullable=False)  # ISO format string
