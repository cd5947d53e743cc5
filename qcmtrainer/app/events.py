from __future__ import annotations

"""Tiny pub/sub event bus.

Events published by a session: ``answered``, ``revealed``, ``navigated``,
``finished``, ``restarted``. The host adds ``persist_failed`` and
``persist_recovered``.
"""

import logging
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)


class EventBus:
    def __init__(self) -> None:
        self._subs: Dict[str, List[Callable[[Any], None]]] = {}

    def subscribe(self, event: str, handler: Callable[[Any], None]) -> None:
        self._subs.setdefault(event, []).append(handler)

    def unsubscribe(self, event: str, handler: Callable[[Any], None]) -> None:
        handlers = self._subs.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def emit(self, event: str, payload: Any = None) -> None:
        for h in list(self._subs.get(event, [])):
            try:
                h(payload)
            except Exception:
                # one broken subscriber must not stop the others
                logger.exception("handler for %r failed", event)
