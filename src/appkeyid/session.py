"""Session state for the signed-in AppKey identity.

The store is owned by the ceremony orchestrator and injected into it. All
access happens on one event loop; writes go through ``commit``/``clear`` only.

Single-writer discipline:
    - Ceremonies for the same identity handle run one at a time
      (``SessionStore.ceremony``).
    - Every ceremony takes a write ticket before its first request. A result
      is committed only if its ticket is newer than the last committed one, so
      a slow response from an older ceremony cannot clobber a newer login.
    - ``clear`` (logout, account deletion) invalidates all outstanding tickets.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from appkeyid.contracts import SessionResult, User
from appkeyid.errors import Unauthenticated

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Session:
    """Identity and tokens of the signed-in user.

    Invariant: ``access_token`` is non-empty iff ``current_user`` is set.
    """

    current_user: User | None = None
    access_token: str = ""
    jwt: str | None = None
    id_token: str | None = None

    @property
    def authenticated(self) -> bool:
        return self.current_user is not None and bool(self.access_token)


EMPTY_SESSION = Session()


class SessionStore:
    """Holds the current ``Session`` and serializes writers."""

    def __init__(self) -> None:
        self._session = EMPTY_SESSION
        self._issued = 0
        self._committed = 0
        self._handle_locks: dict[str, asyncio.Lock] = {}
        self._handle_users: dict[str, int] = {}

    @property
    def session(self) -> Session:
        """Current immutable session snapshot."""
        return self._session

    @property
    def current_user(self) -> User | None:
        return self._session.current_user

    @property
    def access_token(self) -> str:
        return self._session.access_token

    def require_access_token(self) -> str:
        """Return the access token for a protected call.

        Raises:
            Unauthenticated: If no access token is held.
        """
        token = self._session.access_token
        if not token:
            raise Unauthenticated()
        return token

    @asynccontextmanager
    async def ceremony(self, handle: str) -> AsyncIterator[int]:
        """Run one ceremony step for ``handle`` exclusively; yields its write ticket."""
        lock = self._handle_locks.setdefault(handle, asyncio.Lock())
        self._handle_users[handle] = self._handle_users.get(handle, 0) + 1
        try:
            async with lock:
                self._issued += 1
                yield self._issued
        finally:
            # Drop the lock once no holder or waiter is left for the handle.
            self._handle_users[handle] -= 1
            if not self._handle_users[handle]:
                del self._handle_users[handle]
                del self._handle_locks[handle]

    def commit(self, result: SessionResult, ticket: int, merge: bool = False) -> bool:
        """Replace the session with ``result`` if ``ticket`` is still current.

        Args:
            result: Decoded identity with its envelope tokens.
            ticket: Write ticket taken when the ceremony started.
            merge: Keep existing tokens where ``result`` carries none (calls
                made with an established session that only return the user).

        Returns:
            True if committed, False if the result was stale and dropped.
        """
        if ticket <= self._committed:
            logger.info(f"Dropping stale session result (ticket {ticket} <= {self._committed})")
            return False

        current = self._session
        if merge:
            access_token = result.access_token or current.access_token
            jwt = result.jwt or current.jwt
            id_token = result.id_token or current.id_token
        else:
            access_token = result.access_token or ""
            jwt = result.jwt
            id_token = result.id_token

        if not access_token:
            # Never hold a user without a token.
            logger.warning("Session result carried no access token; clearing session")
            self._session = EMPTY_SESSION
        else:
            self._session = Session(
                current_user=result.user,
                access_token=access_token,
                jwt=jwt,
                id_token=id_token,
            )
            logger.info(f"Session updated for user {result.user.user_id}")
        self._committed = ticket
        return True

    def clear(self) -> None:
        """Reset to the empty session and invalidate in-flight ceremonies."""
        self._session = EMPTY_SESSION
        self._committed = self._issued
        logger.info("Session cleared")
