"""User management utilities.

This module provides user management functionality including user storage,
password hashing, username derivation, session-token bookkeeping and
user authentication.
"""

import logging
from datetime import datetime
from typing import List, Optional, Tuple

import bcrypt
import pytz
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from config import BCRYPT_ROUNDS
from core.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidCredentialsError,
    NotFoundError,
    ValidationError,
)
from models.enrollment import EnrollmentModel
from models.user import UserModel
from schemas.user import User
from utils.converters import model_to_user, user_to_model

logger = logging.getLogger(__name__)

ROLE_LEARNER = "learner"
ROLE_TRAINER = "trainer"
ROLE_ADMIN = "admin"
ROLES = (ROLE_LEARNER, ROLE_TRAINER, ROLE_ADMIN)

# bcrypt only considers the first 72 bytes of a password
BCRYPT_MAX_BYTES = 72


class UserNotFoundError(NotFoundError):
    """Exception raised when a user is not found."""

    def __init__(self, message: str = "User not found"):
        super().__init__(message)


class UserAlreadyExistsError(ConflictError):
    """Exception raised when trying to register an email that already exists."""

    def __init__(self, email: str):
        self.email = email
        super().__init__("User with this email already exists.")


def _now() -> datetime:
    return datetime.now(pytz.utc)


class UserManager:
    """Manages user data persistence and operations using SQLAlchemy."""

    def __init__(self, db: Session, bcrypt_rounds: int = BCRYPT_ROUNDS):
        """Initialize UserManager.

        Args:
            db: SQLAlchemy Session.
            bcrypt_rounds: Cost factor used when hashing new passwords.
        """
        self.db = db
        self.bcrypt_rounds = bcrypt_rounds

    def hash_password(self, password: str) -> str:
        """Hash a password using bcrypt.

        Args:
            password: Plain text password.

        Returns:
            Hashed password (bcrypt hash string).
        """
        password_bytes = password.encode("utf-8")
        if len(password_bytes) > BCRYPT_MAX_BYTES:
            logger.warning(
                "Password exceeds %d bytes, truncating", BCRYPT_MAX_BYTES
            )
            password_bytes = password_bytes[:BCRYPT_MAX_BYTES]

        salt = bcrypt.gensalt(rounds=self.bcrypt_rounds)
        return bcrypt.hashpw(password_bytes, salt).decode("utf-8")

    def verify_password(self, plain_password: str, hashed_password: str) -> bool:
        """Verify a password against a bcrypt hash.

        Args:
            plain_password: Plain text password to verify.
            hashed_password: Bcrypt hash string to verify against.

        Returns:
            True if password matches, False otherwise.
        """
        password_bytes = plain_password.encode("utf-8")[:BCRYPT_MAX_BYTES]
        try:
            return bcrypt.checkpw(password_bytes, hashed_password.encode("utf-8"))
        except ValueError as e:
            logger.error("Password verification error: %s", e)
            return False

    def derive_username(self, email: str) -> str:
        """Derive a unique username from the local part of an email.

        ``alice@x.com`` becomes ``alice``; if taken, ``alice1``, ``alice2``...
        """
        base_username = email.split("@")[0]
        username = base_username
        counter = 1
        while (
            self.db.query(UserModel.user_id)
            .filter(UserModel.username == username)
            .first()
        ):
            username = f"{base_username}{counter}"
            counter += 1
        return username

    def register(
        self,
        email: Optional[str],
        password: Optional[str],
        full_name: Optional[str] = None,
        phone_number: Optional[str] = None,
    ) -> User:
        """Register a new learner account.

        Args:
            email: Account email (required, unique).
            password: Plain text password (required).
            full_name: Optional full name.
            phone_number: Optional phone number.

        Returns:
            Created User object.

        Raises:
            ValidationError: If email or password is missing.
            UserAlreadyExistsError: If the email is already registered.
        """
        if not email or not password:
            raise ValidationError("Email and password are required.")

        email = email.strip()
        if self.db.query(UserModel).filter(UserModel.email == email).first():
            raise UserAlreadyExistsError(email)

        user = User(
            email=email,
            username=self.derive_username(email),
            full_name=full_name or "",
            phone_number=phone_number or "",
            password_hash=self.hash_password(password),
            role=ROLE_LEARNER,
        )

        # Two concurrent registrations can both pass the checks above; the
        # unique constraints settle it.
        try:
            self.db.add(user_to_model(user))
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            if "email" in str(e).lower():
                raise UserAlreadyExistsError(email) from e
            raise ConflictError("Username is already taken, please retry.") from e

        logger.info("Created user: %s (%s)", user.username, user.user_id)
        return user

    def authenticate(self, email: Optional[str], password: Optional[str]) -> User:
        """Check login credentials.

        The ban flag is checked before the password.

        Raises:
            ValidationError: If email or password is missing.
            UserNotFoundError: If no account has this email.
            ForbiddenError: If the account is banned.
            InvalidCredentialsError: If the password does not match.
        """
        if not email or not password:
            raise ValidationError("Email and password are required.")

        model = self.db.query(UserModel).filter(UserModel.email == email.strip()).first()
        if model is None:
            raise UserNotFoundError()
        if model.is_banned:
            raise ForbiddenError("Your account has been banned. Contact support.")
        if not self.verify_password(password, model.password_hash):
            raise InvalidCredentialsError("Invalid credentials")
        return model_to_user(model)

    def record_session_token(self, user_id: str, token: str, expires_at: datetime) -> None:
        """Append an issued credential to the user's session list.

        Entries that have already expired are pruned at the same time.
        """
        model = self._get_model(user_id)
        now = _now()
        active = [
            entry
            for entry in (model.tokens or [])
            if datetime.fromisoformat(entry["expires_at"]) > now
        ]
        active.append({"token": token, "expires_at": expires_at.isoformat()})
        model.tokens = active
        model.update_at = now.isoformat()
        self.db.commit()

    def revoke_session_token(self, user_id: str, token: str) -> None:
        model = self._get_model(user_id)
        model.tokens = [e for e in (model.tokens or []) if e.get("token") != token]
        model.update_at = _now().isoformat()
        self.db.commit()

    def change_password(
        self,
        user_id: str,
        current_password: Optional[str],
        new_password: Optional[str],
    ) -> None:
        """Replace a user's password after checking the current one.

        Raises:
            ValidationError: If either password is missing.
            UserNotFoundError: If the user does not exist.
            InvalidCredentialsError: If the current password is wrong.
        """
        if not current_password or not new_password:
            raise ValidationError("Please provide current and new password.")

        model = self._get_model(user_id)
        if not self.verify_password(current_password, model.password_hash):
            raise InvalidCredentialsError("Current password is incorrect")

        model.password_hash = self.hash_password(new_password)
        model.update_at = _now().isoformat()
        self.db.commit()
        logger.info("Password changed for user: %s", user_id)

    def get_user_by_id(self, user_id: str) -> Optional[User]:
        """Get a user by user ID.

        Args:
            user_id: User ID to look up.

        Returns:
            User object if found, None otherwise.
        """
        model = self.db.query(UserModel).filter(UserModel.user_id == user_id).first()
        if model:
            return model_to_user(model)
        return None

    def get_user_by_email(self, email: str) -> Optional[User]:
        model = self.db.query(UserModel).filter(UserModel.email == email).first()
        if model:
            return model_to_user(model)
        return None

    def list_users(self) -> List[User]:
        """List all users, newest first."""
        models = self.db.query(UserModel).order_by(UserModel.create_at.desc()).all()
        return [model_to_user(m) for m in models]

    def update_profile(
        self,
        user_id: str,
        full_name: Optional[str] = None,
        phone_number: Optional[str] = None,
        profile_picture: Optional[str] = None,
    ) -> Tuple[User, Optional[str]]:
        """Update editable profile fields.

        Returns:
            The updated user and the replaced profile picture URL (if any),
            which the caller deletes once the change is committed.
        """
        model = self._get_model(user_id)
        replaced_picture = None
        if full_name is not None:
            model.full_name = full_name
        if phone_number is not None:
            model.phone_number = phone_number
        if profile_picture:
            if model.profile_picture and model.profile_picture != profile_picture:
                replaced_picture = model.profile_picture
            model.profile_picture = profile_picture
        model.update_at = _now().isoformat()
        self.db.commit()
        self.db.refresh(model)
        return model_to_user(model), replaced_picture

    def set_banned(self, user_id: str, banned: bool) -> User:
        model = self._get_model(user_id)
        model.is_banned = banned
        if banned:
            model.tokens = []
        model.update_at = _now().isoformat()
        self.db.commit()
        self.db.refresh(model)
        logger.info("User %s %s", user_id, "banned" if banned else "unbanned")
        return model_to_user(model)

    def delete_user(self, user_id: str) -> User:
        """Delete a user and their enrollments.

        Returns:
            The deleted user.
        """
        model = self._get_model(user_id)
        user = model_to_user(model)
        self.db.query(EnrollmentModel).filter(EnrollmentModel.user_id == user_id).delete()
        self.db.delete(model)
        self.db.commit()
        logger.info("Deleted user: %s", user_id)
        return user

    def _get_model(self, user_id: str) -> UserModel:
        model = self.db.query(UserModel).filter(UserModel.user_id == user_id).first()
        if model is None:
            raise UserNotFoundError()
        return model
