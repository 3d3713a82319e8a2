"""Tool-server session state."""

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


@dataclass
class Session[T]:
    """A client session and the transport it exclusively owns.

    ``created_at`` is fixed at creation and only used to schedule eviction;
    later activity on the session never moves it.
    """

    session_id: str
    transport: T
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    eviction_timer: asyncio.TimerHandle | None = field(default=None, repr=False)

    def as_dict(self) -> dict[str, Any]:
        """Return the session as a dictionary."""
        return {
            "session_id": self.session_id,
            "created_at": self.created_at.isoformat(),
            "transport": type(self.transport).__name__,
        }
