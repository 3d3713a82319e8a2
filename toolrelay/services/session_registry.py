"""Session registry mapping session ids to exclusively-owned transports."""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import timedelta

from cuid2 import cuid_wrapper

from toolrelay.models.session import Session
from toolrelay.utils.logging import get_logger

logger = get_logger(__name__)

cuid = cuid_wrapper()


class SessionRegistry[T]:
    """In-memory registry of live sessions, one transport per session id.

    Creation is single-flight per id: concurrent callers presenting the same
    unseen id all await one creation and receive the same transport, while
    callers for different ids never wait on each other.

    Each session gets exactly one eviction timer, started at creation. It is
    not reset by later use, so a session is removed ``idle_window`` after it was
    created regardless of activity.
    """

    def __init__(
        self,
        factory: Callable[[str], Awaitable[T]],
        idle_window: timedelta = timedelta(minutes=5),
        on_evict: Callable[[T], Awaitable[None]] | None = None,
    ):
        """Initialize session registry.

        Args:
            factory: Builds a new transport for a session id
            idle_window: Time after creation at which a session is evicted
            on_evict: Closes a transport once its session has been removed
        """
        self._factory = factory
        self._on_evict = on_evict
        self.idle_window = idle_window
        self._sessions: dict[str, Session[T]] = {}
        self._pending: dict[str, asyncio.Future[Session[T]]] = {}
        self._closing: set[asyncio.Task[None]] = set()

    async def get_or_create(self, session_id: str | None = None) -> Session[T]:
        """Get the live session for an id, creating it and its transport if needed.

        Args:
            session_id: Client-supplied session id; generated when absent

        Returns:
            The session bound to the id
        """
        session_id = session_id or self._generate_session_id()

        session = self._sessions.get(session_id)
        if session is not None:
            return session

        pending = self._pending.get(session_id)
        if pending is None:
            pending = asyncio.ensure_future(self._create(session_id))
            self._pending[session_id] = pending
            pending.add_done_callback(lambda fut: self._clear_pending(session_id, fut))
        else:
            logger.debug(f"Joining in-flight creation of session {session_id}")

        # One caller being cancelled must not cancel the creation the others share.
        return await asyncio.shield(pending)

    def get(self, session_id: str) -> Session[T] | None:
        """Get a live session by id without creating one."""
        return self._sessions.get(session_id)

    async def evict(self, session_id: str) -> bool:
        """Remove a session ahead of its timer and close its transport.

        Returns:
            True if the session was live, False if it was already gone
        """
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False

        if session.eviction_timer is not None:
            session.eviction_timer.cancel()
        logger.info(f"Evicted session {session_id}")
        await self._close_transport(session)
        return True

    async def close(self) -> None:
        """Cancel every timer and close every transport."""
        for session_id in list(self._sessions):
            await self.evict(session_id)
        if self._closing:
            await asyncio.gather(*self._closing, return_exceptions=True)

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    async def _create(self, session_id: str) -> Session[T]:
        logger.info(f"Creating transport for session {session_id}")
        transport = await self._factory(session_id)
        session = Session(session_id=session_id, transport=transport)
        self._sessions[session_id] = session

        loop = asyncio.get_running_loop()
        session.eviction_timer = loop.call_later(
            self.idle_window.total_seconds(), self._expire, session_id, session
        )
        return session

    def _clear_pending(self, session_id: str, future: asyncio.Future[Session[T]]) -> None:
        if self._pending.get(session_id) is future:
            del self._pending[session_id]
        # Every caller may have been cancelled out of its shield, so retrieve the failure here.
        if not future.cancelled() and future.exception() is not None:
            logger.warning(f"Creating session {session_id} failed: {future.exception()!r}")

    def _expire(self, session_id: str, session: Session[T]) -> None:
        # The id may already belong to a newer session if this one was evicted early.
        if self._sessions.get(session_id) is not session:
            return

        del self._sessions[session_id]
        logger.info(f"Session {session_id} expired after {self.idle_window}")

        task = asyncio.ensure_future(self._close_transport(session))
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)

    async def _close_transport(self, session: Session[T]) -> None:
        if self._on_evict is None:
            return
        try:
            await self._on_evict(session.transport)
        except Exception as e:
            logger.error(f"Failed to close transport for session {session.session_id}: {e}", exc_info=True)

    def _generate_session_id(self) -> str:
        """Generate a new CUID-based session ID."""
        return cuid()
