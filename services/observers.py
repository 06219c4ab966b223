from __future__ import annotations

import logging
from typing import Callable, Dict, Generic, List, Optional, TypeVar

T = TypeVar("T")

Listener = Callable[[T], None]


class Subscribers(Generic[T]):
    """Change notification for snapshot stores.

    Listeners registered with a ``key`` only hear about that key; listeners
    registered without one hear about everything. A failing listener is
    logged and never stops the others from being notified.
    """

    def __init__(self, logger: logging.Logger):
        self._logger = logger
        self._all: List[Listener] = []
        self._by_key: Dict[str, List[Listener]] = {}

    def subscribe(self, callback: Listener, key: Optional[str] = None) -> Callable[[], None]:
        bucket = self._all if key is None else self._by_key.setdefault(key, [])
        bucket.append(callback)

        def unsubscribe() -> None:
            if callback in bucket:
                bucket.remove(callback)

        return unsubscribe

    def emit(self, key: str, value: T) -> None:
        listeners = list(self._by_key.get(key, ())) + list(self._all)
        for listener in listeners:
            try:
                listener(value)
            except Exception:
                self._logger.exception("Subscriber failed while handling %s", key)

    def __len__(self) -> int:
        return len(self._all) + sum(len(items) for items in self._by_key.values())


__all__ = ["Subscribers"]
