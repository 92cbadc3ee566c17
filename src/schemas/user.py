"""User-related request and response schemas."""

import secrets
from datetime import datetime
from typing import List, Optional

import pytz
from pydantic import BaseModel, Field


def _now_iso() -> str:
    return datetime.now(pytz.utc).isoformat()


class User(BaseModel):
    """Application user, including the stored password hash."""

    user_id: str = Field(default_factory=lambda: secrets.token_hex(8))
    email: str
    username: str
    full_name: str = ""
    phone_number: str = ""
    profile_picture: Optional[str] = None
    password_hash: str
    role: str = "learner"
    is_banned: bool = False
    tokens: List[dict] = Field(default_factory=list)
    create_at: str = Field(default_factory=_now_iso)
    update_at: str = Field(default_factory=_now_iso)

    def public_dict(self) -> dict:
        """Return the user as a dict without secrets."""
        return self.model_dump(exclude={"password_hash", "tokens"})


class Identity(BaseModel):
    """Identity decoded from a verified bearer credential."""

    user_id: str
    role: str


class RegisterRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None
    full_name: Optional[str] = Field(default=None, alias="fullName")
    phone_number: Optional[str] = Field(default=None, alias="phoneNumber")

    model_config = {"populate_by_name": True}


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class ChangePasswordRequest(BaseModel):
    current_password: Optional[str] = Field(default=None, alias="currentPassword")
    new_password: Optional[str] = Field(default=None, alias="newPassword")

    model_config = {"populate_by_name": True}


class BanUserRequest(BaseModel):
    is_banned: bool = Field(alias="isBanned")

    model_config = {"populate_by_name": True}


class LoginUserView(BaseModel):
    id: str
    name: str
    email: str
    role: str


class LoginResponse(BaseModel):
    success: bool = True
    message: str = "Login successful"
    token: str
    user: LoginUserView
