"""Repository refresh signals.

Status pollers and UI layers subscribe here instead of polling after every
call: the service emits one event per successful mutation.
"""

from collections.abc import Callable, Coroutine
from datetime import UTC, datetime
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field

logger = structlog.get_logger()

REPO_MUTATED = "repo.mutated"
CONFLICTS_DETECTED = "repo.conflicts_detected"
ALL_EVENTS = "*"


class RepoEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    root: str
    operation: str
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


EventHandler = Callable[[RepoEvent], Coroutine[Any, Any, None]]


class EventBus:
    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = {}

    def subscribe(
        self, event_name: str, handler: EventHandler
    ) -> Callable[[], None]:
        """Register *handler*; ``"*"`` receives every event. Returns an unsubscriber."""
        self._handlers.setdefault(event_name, []).append(handler)
        return lambda: self.unsubscribe(event_name, handler)

    def unsubscribe(self, event_name: str, handler: EventHandler) -> None:
        handlers = self._handlers.get(event_name, [])
        if handler in handlers:
            handlers.remove(handler)
        if not handlers:
            self._handlers.pop(event_name, None)

    def handler_count(self, event_name: str) -> int:
        return len(self._handlers.get(event_name, []))

    async def emit(self, event: RepoEvent) -> None:
        targets = [
            *self._handlers.get(event.name, []),
            *self._handlers.get(ALL_EVENTS, []),
        ]
        for handler in targets:
            try:
                await handler(event)
            except Exception:
                logger.exception(
                    "event_handler_error",
                    event_name=event.name,
                    root=event.root,
                    handler_name=getattr(handler, "__name__", repr(handler)),
                )

    async def repo_mutated(self, root: str, operation: str, **data: Any) -> None:
        await self.emit(
            RepoEvent(name=REPO_MUTATED, root=root, operation=operation, data=data)
        )
