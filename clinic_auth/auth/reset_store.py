"""
One-time password reset tokens.

Only the SHA-256 digest of a reset token is stored. Methods never commit.
"""
import logging
from datetime import timedelta
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from ..core.security import generate_secure_reset_token, hash_token, utcnow
from .models import AccountStatus, PasswordReset, User

logger = logging.getLogger(__name__)


class ResetTokenStore:
    def __init__(self, db: Session):
        self.db = db

    def create(self, user_id: int, ttl: timedelta) -> Tuple[str, PasswordReset]:
        """
        Store a new reset token for a user.

        Returns:
            tuple: (raw token to send to the user, stored row)
        """
        token = generate_secure_reset_token()
        reset = PasswordReset(
            user_id=user_id,
            token_hash=hash_token(token),
            expires_at=utcnow() + ttl,
        )
        self.db.add(reset)
        self.db.flush()
        return token, reset

    def find_valid(self, token: str) -> Optional[Tuple[PasswordReset, User]]:
        """Return the reset row and its user if the token is unexpired and the user is active."""
        row = (
            self.db.query(PasswordReset, User)
            .join(User, User.id == PasswordReset.user_id)
            .filter(
                PasswordReset.token_hash == hash_token(token),
                PasswordReset.expires_at > utcnow(),
                User.status == AccountStatus.ACTIVE,
            )
            .first()
        )
        if row is None:
            return None
        return row[0], row[1]

    def consume(self, token: str) -> bool:
        """Delete an unexpired reset row. True if this call removed it."""
        removed = (
            self.db.query(PasswordReset)
            .filter(
                PasswordReset.token_hash == hash_token(token),
                PasswordReset.expires_at > utcnow(),
            )
            .delete(synchronize_session=False)
        )
        return removed == 1

    def delete_for_user(self, user_id: int) -> int:
        return (
            self.db.query(PasswordReset)
            .filter(PasswordReset.user_id == user_id)
            .delete(synchronize_session=False)
        )

    def purge_expired(self) -> int:
        removed = (
            self.db.query(PasswordReset)
            .filter(PasswordReset.expires_at <= utcnow())
            .delete(synchronize_session=False)
        )
        if removed:
            logger.debug(f"Purged {removed} expired reset token(s)")
        return removed
