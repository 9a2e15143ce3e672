"""In-process change channel for CRM views.

Every write to the local store publishes a ChangeEvent; any number of view
controllers subscribe and refresh themselves from the store. A subscriber
that raises is logged and skipped so one broken view cannot starve the rest.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

import structlog

logger = structlog.get_logger(__name__)

ChangeSource = Literal["local", "hydration", "transfer", "import"]


@dataclass(frozen=True)
class ChangeEvent:
    """Immutable notice that the persisted collection was replaced."""

    key: str
    source: ChangeSource
    record_count: int


ChangeListener = Callable[[ChangeEvent], None]


class Subscription:
    """Handle returned by ChangeChannel.subscribe.

    Usable as a context manager so a view's lifetime bounds its subscription.
    """

    def __init__(self, channel: ChangeChannel, listener: ChangeListener) -> None:
        self._channel = channel
        self.listener = listener
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        if self._active:
            self._active = False
            self._channel._remove(self)

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.cancel()


class ChangeChannel:
    """Synchronous publish/subscribe fan-out for ChangeEvents."""

    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []

    def __len__(self) -> int:
        return len(self._subscriptions)

    def subscribe(self, listener: ChangeListener) -> Subscription:
        subscription = Subscription(self, listener)
        self._subscriptions.append(subscription)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        try:
            self._subscriptions.remove(subscription)
        except ValueError:
            pass

    def publish(self, event: ChangeEvent) -> None:
        """Deliver event to every current subscriber, in subscription order."""
        for subscription in list(self._subscriptions):
            try:
                subscription.listener(event)
            except Exception as exc:
                logger.error(
                    "crm.view_refresh_failed",
                    key=event.key,
                    source=event.source,
                    error=str(exc),
                    exc_info=True,
                )

    def clear(self) -> None:
        """Cancel every subscription."""
        for subscription in list(self._subscriptions):
            subscription.cancel()
