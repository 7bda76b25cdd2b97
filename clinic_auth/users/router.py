"""
User administration API endpoints.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import service as auth_service
from ..auth.dependencies import get_current_identity, require_admin, require_any_staff, require_staff_or_admin
from ..auth.exceptions import ValidationException
from ..auth.models import AccountStatus, UserRole
from ..auth.schemas import AuthenticatedIdentity, ProfileResponse, ProfileUpdateRequest, UserResponse, UserStatusUpdate
from ..core.pagination import PageParams
from ..core.responses import api_response
from ..database import get_db
from . import service

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("")
def list_users(
    page_params: PageParams = Depends(),
    role: Optional[UserRole] = Query(None, description="Filter by role"),
    status: Optional[AccountStatus] = Query(None, description="Filter by account status"),
    identity: AuthenticatedIdentity = Depends(require_any_staff),
    db: Session = Depends(get_db),
):
    """
    List users, paginated. Available to admins, staff and doctors.
    """
    page = service.list_users(db, page_params, role=role, status=status)
    return api_response("Users retrieved successfully", page)


@router.put("/profile")
def update_own_profile(
    payload: ProfileUpdateRequest,
    identity: AuthenticatedIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    """
    Update the caller's phone number and profile details.

    Email, role and account status cannot be changed through this endpoint.
    """
    result = auth_service.update_user_profile(db, identity, payload)
    profile = result["profile"]
    return api_response(
        "Profile updated successfully",
        {
            "user": UserResponse.model_validate(result["user"]),
            "profile": ProfileResponse.model_validate(profile) if profile is not None else None,
        },
    )


@router.get("/{user_id}")
def get_user(
    user_id: int,
    identity: AuthenticatedIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    result = service.get_user_for(db, user_id, identity)
    profile = result["profile"]
    return api_response(
        "User retrieved successfully",
        {
            "user": UserResponse.model_validate(result["user"]),
            "profile": ProfileResponse.model_validate(profile) if profile is not None else None,
        },
    )


@router.patch("/{user_id}/status")
def update_user_status(
    user_id: int,
    payload: UserStatusUpdate,
    identity: AuthenticatedIdentity = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """
    Activate, deactivate or suspend an account.

    Leaving the active state signs the user out everywhere.
    """
    if user_id == identity.id and payload.status != AccountStatus.ACTIVE:
        raise ValidationException("You cannot deactivate your own account")
    user = auth_service.update_user_status(db, user_id, payload.status, changed_by=identity.id)
    return api_response("User status updated successfully", {"user": UserResponse.model_validate(user)})


@router.put("/{user_id}/verify")
def verify_user(
    user_id: int,
    identity: AuthenticatedIdentity = Depends(require_staff_or_admin),
    db: Session = Depends(get_db),
):
    user = auth_service.verify_user_account(db, user_id, verified_by=identity.id)
    return api_response("User verified successfully", {"user": UserResponse.model_validate(user)})
