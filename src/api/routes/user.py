"""User routes.

Profile reads and edits, the caller's enrollments, and admin user
administration (listing, banning, deleting).
"""

import logging

from fastapi import APIRouter, Depends

from api.routes.auth import get_current_identity, require_roles
from core.dependencies import (
    EnrollmentManagerDep,
    MediaStoreDep,
    UserManagerDep,
    upload_stage,
)
from core.exceptions import ForbiddenError
from schemas.user import BanUserRequest, Identity
from utils.media_store import CONTEXT_USER, RESOURCE_IMAGE
from utils.uploads import MultipartPayload
from utils.user_manager import ROLE_ADMIN, UserNotFoundError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["Users"])

profile_uploads = upload_stage(CONTEXT_USER, abort_on_failure=False)


def self_or_admin(user_id: str, identity: Identity = Depends(get_current_identity)) -> Identity:
    """Admit the user named in the path, or any admin."""
    if identity.role != ROLE_ADMIN and identity.user_id != user_id:
        raise ForbiddenError("Access denied")
    return identity


@router.get("/me", summary="Current user profile")
def get_me(
    identity: Identity = Depends(get_current_identity),
    user_manager: UserManagerDep = None,
) -> dict:
    user = user_manager.get_user_by_id(identity.user_id)
    if user is None:
        raise UserNotFoundError()
    return {"success": True, "message": "OK", "user": user.public_dict()}


@router.get("/me/enrolled", summary="Enrolled courses")
def get_my_enrolled_courses(
    identity: Identity = Depends(get_current_identity),
    enrollment_manager: EnrollmentManagerDep = None,
) -> dict:
    """List the caller's enrolled courses in enrollment order."""
    return {
        "success": True,
        "message": "Enrolled courses fetched successfully",
        "courses": enrollment_manager.list_enrolled_courses(identity.user_id),
    }


@router.get("", summary="List users")
def list_users(
    identity: Identity = Depends(require_roles("admin")),
    user_manager: UserManagerDep = None,
) -> dict:
    return {
        "success": True,
        "message": "Users fetched successfully",
        "users": [u.public_dict() for u in user_manager.list_users()],
    }


@router.get("/{user_id}", summary="Get user")
def get_user(
    user_id: str,
    identity: Identity = Depends(require_roles("admin")),
    user_manager: UserManagerDep = None,
) -> dict:
    user = user_manager.get_user_by_id(user_id)
    if user is None:
        raise UserNotFoundError()
    return {"success": True, "message": "OK", "user": user.public_dict()}


@router.patch("/{user_id}", summary="Update profile")
def update_user(
    user_id: str,
    identity: Identity = Depends(self_or_admin),
    payload: MultipartPayload = Depends(profile_uploads),
    user_manager: UserManagerDep = None,
    media_store: MediaStoreDep = None,
) -> dict:
    """Update a profile; a replaced picture is deleted after commit.

    Args:
        user_id: User to update.
        identity: The user themself or an admin.
        payload: ``fullName``, ``phoneNumber`` and an optional
            ``profilePicture`` upload.
        user_manager: Injected UserManager instance.
        media_store: Media store used to delete the replaced picture.

    Returns:
        Dictionary with success message and the updated profile.
    """
    try:
        user, replaced_picture = user_manager.update_profile(
            user_id,
            full_name=payload.fields.get("fullName"),
            phone_number=payload.fields.get("phoneNumber"),
            profile_picture=payload.files.first_url("profilePicture"),
        )
    except UserNotFoundError:
        media_store.discard(payload.files.all())
        raise
    if replaced_picture:
        media_store.delete(replaced_picture, RESOURCE_IMAGE)
    return {
        "success": True,
        "message": "Profile updated successfully",
        "user": user.public_dict(),
    }


@router.patch("/{user_id}/ban", summary="Ban or unban user")
def ban_user(
    user_id: str,
    req: BanUserRequest,
    identity: Identity = Depends(require_roles("admin")),
    user_manager: UserManagerDep = None,
) -> dict:
    user = user_manager.set_banned(user_id, req.is_banned)
    return {
        "success": True,
        "message": "User banned" if user.is_banned else "User unbanned",
        "user": user.public_dict(),
    }


@router.delete("/{user_id}", summary="Delete user")
def delete_user(
    user_id: str,
    identity: Identity = Depends(self_or_admin),
    user_manager: UserManagerDep = None,
    media_store: MediaStoreDep = None,
) -> dict:
    user = user_manager.delete_user(user_id)
    if user.profile_picture:
        media_store.delete(user.profile_picture, RESOURCE_IMAGE)
    return {"success": True, "message": "User deleted successfully"}
