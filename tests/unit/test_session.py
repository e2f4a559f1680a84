"""Unit tests for session state and the single-writer discipline."""

import asyncio

import pytest

from appkeyid.contracts import SessionResult, User
from appkeyid.errors import Unauthenticated
from appkeyid.session import EMPTY_SESSION, SessionStore
from conftest import make_user_payload


def _result(user_id: str = "user-1", token: str | None = "tok") -> SessionResult:
    user = User.model_validate(make_user_payload(userId=user_id))
    return SessionResult(user=user, access_token=token, jwt="jwt-" + user_id)


class TestSessionStore:
    """Tests for SessionStore."""

    def test_starts_empty(self):
        store = SessionStore()

        assert store.session is EMPTY_SESSION
        assert store.session.authenticated is False

    def test_require_access_token_without_session(self):
        with pytest.raises(Unauthenticated):
            SessionStore().require_access_token()

    @pytest.mark.asyncio
    async def test_commit_replaces_session(self):
        store = SessionStore()
        async with store.ceremony("ada@example.com") as ticket:
            assert store.commit(_result(), ticket) is True

        assert store.current_user.user_id == "user-1"
        assert store.require_access_token() == "tok"
        assert store.session.jwt == "jwt-user-1"

    @pytest.mark.asyncio
    async def test_stale_ticket_dropped(self):
        """A result from an older ceremony cannot overwrite a newer one."""
        store = SessionStore()
        async with store.ceremony("a@example.com") as older:
            pass
        async with store.ceremony("b@example.com") as newer:
            pass

        assert store.commit(_result("newer", "t2"), newer) is True
        assert store.commit(_result("older", "t1"), older) is False
        assert store.current_user.user_id == "newer"
        assert store.access_token == "t2"

    @pytest.mark.asyncio
    async def test_clear_invalidates_outstanding_tickets(self):
        """Results of ceremonies started before logout are dropped."""
        store = SessionStore()
        async with store.ceremony("a@example.com") as ticket:
            pass

        store.clear()

        assert store.commit(_result(), ticket) is False
        assert store.session is EMPTY_SESSION

    @pytest.mark.asyncio
    async def test_merge_keeps_existing_tokens(self):
        store = SessionStore()
        async with store.ceremony("a") as ticket:
            store.commit(_result(token="tok"), ticket)
        async with store.ceremony("a") as ticket:
            store.commit(_result(user_id="user-1", token=None), ticket, merge=True)

        assert store.access_token == "tok"

    @pytest.mark.asyncio
    async def test_result_without_token_clears(self):
        """A user is never held without an access token."""
        store = SessionStore()
        async with store.ceremony("a") as ticket:
            store.commit(_result(token=None), ticket)

        assert store.current_user is None
        assert store.access_token == ""

    @pytest.mark.asyncio
    async def test_same_handle_ceremonies_serialize(self):
        """Ceremonies for one handle never overlap."""
        store = SessionStore()
        active = 0
        peak = 0

        async def step():
            nonlocal active, peak
            async with store.ceremony("same@example.com"):
                active += 1
                peak = max(peak, active)
                await asyncio.sleep(0)
                active -= 1

        await asyncio.gather(step(), step(), step())

        assert peak == 1

    @pytest.mark.asyncio
    async def test_handle_locks_released(self):
        """Per-handle locks do not outlive their ceremonies."""
        store = SessionStore()

        async def step(handle):
            async with store.ceremony(handle):
                await asyncio.sleep(0)

        await asyncio.gather(step("a@example.com"), step("a@example.com"), step("b@example.com"))

        assert store._handle_locks == {}
