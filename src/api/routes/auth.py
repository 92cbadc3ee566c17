"""Authentication routes.

This module handles HTTP endpoints for registration, login, logout and
password changes, and provides the bearer-credential dependencies used by
every other router.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

import pytz
from fastapi import APIRouter, Depends, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from config import Settings
from core.dependencies import SettingsDep, UserManagerDep
from core.exceptions import ForbiddenError, UnauthenticatedError
from schemas.user import (
    ChangePasswordRequest,
    Identity,
    LoginRequest,
    LoginResponse,
    LoginUserView,
    RegisterRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])

# HTTP Bearer token security; missing credentials are reported by us
security = HTTPBearer(auto_error=False)


def create_access_token(
    data: dict, settings: Settings, expires_delta: Optional[timedelta] = None
) -> tuple:
    """Create a JWT access token.

    Args:
        data: Data to encode in the token.
        settings: Settings holding the signing secret and default lifetime.
        expires_delta: Optional expiration time delta.

    Returns:
        Tuple of the encoded JWT token string and its expiry time.
    """
    to_encode = data.copy()
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.access_token_expire_minutes)
    expire = datetime.now(pytz.utc) + expires_delta
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(
        to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm
    )
    return encoded_jwt, expire


def decode_token(token: str, settings: Settings) -> Identity:
    """Verify a bearer token and extract the caller identity.

    Raises:
        UnauthenticatedError: If the token is invalid or expired.
    """
    try:
        payload = jwt.decode(
            token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm]
        )
    except JWTError:
        raise UnauthenticatedError("Invalid or expired token")

    user_id = payload.get("sub")
    role = payload.get("role")
    if not user_id or not role:
        raise UnauthenticatedError("Invalid authentication credentials")
    return Identity(user_id=user_id, role=str(role).lower())


def get_current_identity(
    request: Request,
    settings: SettingsDep,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Identity:
    """Get the identity behind the request's bearer credential.

    Raises:
        UnauthenticatedError: If no credential was presented or it fails
            verification.
    """
    if credentials is None or not credentials.credentials:
        raise UnauthenticatedError("No token provided")
    identity = decode_token(credentials.credentials, settings)
    request.state.identity = identity
    request.state.token = credentials.credentials
    return identity


def get_optional_identity(
    request: Request,
    settings: SettingsDep,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[Identity]:
    """Like ``get_current_identity`` but anonymous callers get ``None``.

    A credential that is presented but invalid is still rejected.
    """
    if credentials is None or not credentials.credentials:
        return None
    return get_current_identity(request, settings, credentials)


def require_roles(*roles: str) -> Callable:
    """Build a dependency that admits only the given roles.

    An empty role list admits every authenticated caller.
    """
    allowed = {role.lower() for role in roles}

    def dependency(identity: Identity = Depends(get_current_identity)) -> Identity:
        if allowed and identity.role.lower() not in allowed:
            raise ForbiddenError("Access denied")
        return identity

    return dependency


@router.post("/register", status_code=status.HTTP_201_CREATED, summary="Register")
def register(
    req: RegisterRequest,
    user_manager: UserManagerDep = None,
) -> dict:
    """Register a new learner account.

    Args:
        req: Registration request with email, password and optional profile.
        user_manager: Injected UserManager instance.

    Returns:
        Dictionary with success message and the created profile.
    """
    user = user_manager.register(
        email=req.email,
        password=req.password,
        full_name=req.full_name,
        phone_number=req.phone_number,
    )
    return {
        "success": True,
        "message": "User registered successfully",
        "user": user.public_dict(),
    }


@router.post("/login", summary="Login")
def login(
    req: LoginRequest,
    settings: SettingsDep,
    user_manager: UserManagerDep = None,
) -> LoginResponse:
    """Login with email and password.

    Args:
        req: Login request with email and password.
        settings: Application settings.
        user_manager: Injected UserManager instance.

    Returns:
        LoginResponse with a minimal user view and a JWT token.
    """
    user = user_manager.authenticate(req.email, req.password)

    access_token, expires_at = create_access_token(
        data={"sub": user.user_id, "role": user.role}, settings=settings
    )
    user_manager.record_session_token(user.user_id, access_token, expires_at)
    logger.info("User logged in: %s", user.user_id)

    return LoginResponse(
        token=access_token,
        user=LoginUserView(
            id=user.user_id,
            name=user.full_name or user.username,
            email=user.email,
            role=user.role,
        ),
    )


@router.post("/logout", summary="Logout")
def logout(
    request: Request,
    identity: Identity = Depends(get_current_identity),
    user_manager: UserManagerDep = None,
) -> dict:
    """Remove the presented token from the user's session list."""
    user_manager.revoke_session_token(identity.user_id, request.state.token)
    return {"success": True, "message": "Logged out successfully"}


@router.put("/password", summary="Change password")
def change_password(
    req: ChangePasswordRequest,
    identity: Identity = Depends(get_current_identity),
    user_manager: UserManagerDep = None,
) -> dict:
    user_manager.change_password(
        identity.user_id, req.current_password, req.new_password
    )
    return {"success": True, "message": "Password updated successfully"}


@router.get("/me", summary="Current user")
def get_current_user_info(
    identity: Identity = Depends(get_current_identity),
    user_manager: UserManagerDep = None,
) -> dict:
    """Get current authenticated user information.

    Args:
        identity: Identity of the caller.
        user_manager: Injected UserManager instance.

    Returns:
        Dictionary with the user's profile.
    """
    user = user_manager.get_user_by_id(identity.user_id)
    if user is None:
        raise UnauthenticatedError("User not found")
    return {"success": True, "message": "OK", "user": user.public_dict()}
