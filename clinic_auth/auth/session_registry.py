"""
Session registry - the server-side record of every token still honoured.

A signed token is accepted only while a non-expired row with its digest
exists here, so deleting rows is how logout and password resets take effect.
Methods flush but never commit; callers own the transaction.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ..core.security import hash_token, utcnow
from .models import IssuedToken, TokenType

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Persistence for issued access and refresh tokens."""

    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        user_id: int,
        token: str,
        token_type: TokenType,
        expires_at: datetime,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> IssuedToken:
        """
        Register a freshly issued token.

        Args:
            user_id: Owner of the token
            token: Encoded JWT (only its digest is stored)
            token_type: access or refresh
            expires_at: Same instant as the token's exp claim
            user_agent: Client user agent, truncated to the column size
            ip_address: Client address

        Returns:
            IssuedToken: The new row
        """
        issued = IssuedToken(
            user_id=user_id,
            token_hash=hash_token(token),
            token_type=token_type,
            expires_at=expires_at,
            user_agent=user_agent[:255] if user_agent else None,
            ip_address=ip_address,
        )
        self.db.add(issued)
        self.db.flush()
        return issued

    def find_by_token(self, token: str) -> Optional[IssuedToken]:
        return self.db.query(IssuedToken).filter(IssuedToken.token_hash == hash_token(token)).first()

    def find_active(self, token: str, token_type: Optional[TokenType] = None) -> Optional[IssuedToken]:
        """Return the token's row only if it has not expired."""
        query = self.db.query(IssuedToken).filter(
            IssuedToken.token_hash == hash_token(token),
            IssuedToken.expires_at > utcnow(),
        )
        if token_type is not None:
            query = query.filter(IssuedToken.token_type == token_type)
        return query.first()

    def revoke(self, token: str, user_id: Optional[int] = None) -> int:
        """
        Delete the token's row. Returns the number of rows removed (0 or 1).

        When user_id is given only a row owned by that user is removed.
        """
        query = self.db.query(IssuedToken).filter(IssuedToken.token_hash == hash_token(token))
        if user_id is not None:
            query = query.filter(IssuedToken.user_id == user_id)
        return query.delete(synchronize_session=False)

    def revoke_all_for_user(self, user_id: int) -> int:
        removed = (
            self.db.query(IssuedToken)
            .filter(IssuedToken.user_id == user_id)
            .delete(synchronize_session=False)
        )
        logger.info(f"Revoked {removed} token(s) for user {user_id}")
        return removed

    def consume(self, token: str, token_type: TokenType) -> bool:
        """
        Delete the token's row if it is still active.

        The delete is conditional, so when two requests present the same token
        concurrently only one of them sees a removed row.

        Returns:
            bool: True if this call removed the row
        """
        removed = (
            self.db.query(IssuedToken)
            .filter(
                IssuedToken.token_hash == hash_token(token),
                IssuedToken.token_type == token_type,
                IssuedToken.expires_at > utcnow(),
            )
            .delete(synchronize_session=False)
        )
        return removed == 1

    def purge_expired(self, user_id: Optional[int] = None) -> int:
        """Delete expired rows, for one user or for everybody."""
        query = self.db.query(IssuedToken).filter(IssuedToken.expires_at <= utcnow())
        if user_id is not None:
            query = query.filter(IssuedToken.user_id == user_id)
        removed = query.delete(synchronize_session=False)
        if removed:
            logger.debug(f"Purged {removed} expired token(s)")
        return removed

    def count_active_for_user(self, user_id: int) -> int:
        return (
            self.db.query(IssuedToken)
            .filter(IssuedToken.user_id == user_id, IssuedToken.expires_at > utcnow())
            .count()
        )
