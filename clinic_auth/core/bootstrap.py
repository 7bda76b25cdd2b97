"""
Bootstrap utilities for first admin creation.
Handles automatic creation of the first admin user from environment variables.
"""
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..auth.credential_store import CredentialStore
from ..auth.exceptions import DuplicateEmailException
from ..auth.models import AccountStatus, User, UserRole
from ..config import settings

logger = logging.getLogger(__name__)


def admin_exists(db: Session) -> bool:
    """
    Check if any admin user exists in the database.

    Args:
        db: Database session

    Returns:
        bool: True if at least one admin exists, False otherwise
    """
    return db.query(User).filter(User.role == UserRole.ADMIN).count() > 0


def create_bootstrap_admin(db: Session) -> bool:
    """
    Create the first admin user from environment variables.

    Args:
        db: Database session

    Returns:
        bool: True if admin was created successfully, False otherwise
    """
    if not settings.bootstrap_admin_email or not settings.bootstrap_admin_password:
        logger.warning("Bootstrap admin credentials not provided in environment variables")
        return False

    try:
        admin = CredentialStore(db).create_user(
            email=settings.bootstrap_admin_email,
            password=settings.bootstrap_admin_password,
            role=UserRole.ADMIN,
            status=AccountStatus.ACTIVE,
            is_verified=True,
        )
        db.commit()
    except DuplicateEmailException:
        db.rollback()
        logger.warning(f"Bootstrap failed: Email {settings.bootstrap_admin_email} already exists")
        return False
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to create bootstrap admin: {str(e)}")
        return False

    logger.info(f"Bootstrap admin created: {admin.email} (ID: {admin.id})")
    return True


def bootstrap_admin_if_needed(db: Session) -> None:
    """
    Check if admin exists and create bootstrap admin if needed.
    This function should be called during application startup.

    Args:
        db: Database session
    """
    if admin_exists(db):
        logger.info("Admin users found. Bootstrap not needed.")
        return

    logger.info("No admin users found. Attempting bootstrap admin creation...")
    if not create_bootstrap_admin(db):
        logger.warning(
            "Bootstrap admin creation skipped. Set BOOTSTRAP_ADMIN_EMAIL and "
            "BOOTSTRAP_ADMIN_PASSWORD to create the first admin."
        )
