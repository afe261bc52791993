"""Typed notification channel for completed email syncs."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

import structlog

logger = structlog.get_logger()


@dataclass(frozen=True)
class SyncCompleteEvent:
    """A contact's email history finished syncing for ``user_id``."""

    contact_email: str
    user_id: str


SyncListener = Callable[[SyncCompleteEvent], None]


class SyncEventChannel:
    """Explicit publish/subscribe channel for :class:`SyncCompleteEvent`."""

    def __init__(self) -> None:
        self._listeners: list[SyncListener] = []

    def subscribe(self, listener: SyncListener) -> Callable[[], None]:
        """Register ``listener`` and return a callable that unsubscribes it."""

        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: SyncCompleteEvent) -> None:
        logger.info(
            "email_sync_complete_published",
            contact_email=event.contact_email,
            listeners=len(self._listeners),
        )
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as exc:  # noqa: BLE001
                # One failing subscriber must not starve the others.
                logger.exception(
                    "email_sync_listener_failed",
                    contact_email=event.contact_email,
                    error=str(exc),
                )

    def __len__(self) -> int:
        return len(self._listeners)
