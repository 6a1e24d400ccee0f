"""Publish/subscribe channel with per-tick notification coalescing."""

from __future__ import annotations

import asyncio
import logging

from querykit.types import Listener, Unsubscribe

logger = logging.getLogger(__name__)


class Notifier:
    """Base for everything consumers can subscribe to.

    ``notify()`` may be called any number of times within one event loop
    iteration; listeners run once, on the next iteration. Outside a running
    loop listeners are called immediately.
    """

    def __init__(self) -> None:
        self._listeners: list[Listener] = []
        self._scheduled: asyncio.Handle | None = None

    @property
    def has_listeners(self) -> bool:
        return bool(self._listeners)

    def subscribe(self, listener: Listener) -> Unsubscribe:
        """Register ``listener`` and return a callable that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def notify(self) -> None:
        if self._scheduled is not None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._flush()
            return
        self._scheduled = loop.call_soon(self._flush)

    def dispose_notifier(self) -> None:
        """Drop every listener and any pending flush."""
        if self._scheduled is not None:
            self._scheduled.cancel()
            self._scheduled = None
        self._listeners.clear()

    def _flush(self) -> None:
        self._scheduled = None
        # Listeners may unsubscribe while we iterate
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("Listener %r raised", listener)
