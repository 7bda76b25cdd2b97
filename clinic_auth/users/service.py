"""
User administration - listing and looking up accounts.

Status changes and account verification go through the auth service because
they touch sessions.
"""
import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..auth.credential_store import CredentialStore
from ..auth.exceptions import RoleNotAllowedException
from ..auth.models import AccountStatus, UserRole
from ..auth.schemas import AuthenticatedIdentity, UserResponse
from ..core.pagination import PageParams, PageResponse, paginate

logger = logging.getLogger(__name__)

# Roles that may list and read any user's record; matches the GET /users guard
USER_READER_ROLES = (UserRole.ADMIN, UserRole.STAFF, UserRole.DOCTOR)


def list_users(
    db: Session,
    page_params: PageParams,
    role: Optional[UserRole] = None,
    status: Optional[AccountStatus] = None,
) -> PageResponse:
    query = CredentialStore(db).list_users(role=role, status=status)
    return paginate(query, page_params, UserResponse)


def get_user_for(db: Session, user_id: int, identity: AuthenticatedIdentity) -> Dict[str, Any]:
    """
    Load a user on behalf of the caller.

    Admins, staff and doctors may read anybody; patients only themselves.

    Raises:
        RoleNotAllowedException: If the caller may not read this user
        UserNotFoundException: If the user does not exist
    """
    if identity.id != user_id and identity.role not in USER_READER_ROLES:
        logger.warning(f"User {identity.id} ({identity.role.value}) tried to read user {user_id}")
        raise RoleNotAllowedException(USER_READER_ROLES, identity.role)

    store = CredentialStore(db)
    user = store.get_or_404(user_id)
    return {"user": user, "profile": store.get_profile(user)}
