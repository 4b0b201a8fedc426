"""
Session registry: list and revoke a user's sessions.

A session can only be revoked by the user who owns it. The ownership check
runs on the locked row, in the same transaction as the delete.
"""
import logging
from typing import Dict, List

from ..auth.identity import Identity
from ..errors import AccessDeniedError, NotFoundError

logger = logging.getLogger(__name__)


class SessionRegistry:
    def __init__(self, db):
        self.db = db

    def list_sessions(self, identity: Identity) -> List[Dict]:
        """
        List the caller's sessions, most recently active first.

        Each entry is flagged `current` when it is the session making the call.
        """
        rows = self.db.list_sessions(identity.user_id)
        for row in rows:
            row["current"] = row["session_id"] == identity.session_id
        return rows

    def revoke(self, identity: Identity, session_id: str) -> None:
        """
        Revoke one session.

        Raises:
            NotFoundError: No such session (including one already revoked).
            AccessDeniedError: The session belongs to another user.
        """
        with self.db.get_session() as session:
            record = self.db.get_session_record(session_id, session=session, for_update=True)
            if record is None:
                raise NotFoundError("Session")

            if record["user_id"] != identity.user_id:
                logger.warning(
                    f"User {identity.user_id} attempted to revoke session {session_id} "
                    f"owned by another user"
                )
                raise AccessDeniedError()

            self.db.delete_session(session_id, session=session)

        logger.info(f"User {identity.user_id} revoked session {session_id}")

    def revoke_others(self, identity: Identity, session=None) -> int:
        """Revoke every session of the caller except the current one."""
        return self.db.delete_user_sessions(
            identity.user_id,
            keep_session_id=identity.session_id,
            session=session,
        )
