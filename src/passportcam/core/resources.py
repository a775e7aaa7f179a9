from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Any, Callable, Generic, Iterator, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ResourceGuard(Generic[T]):
    """
    Owns a model/backend handle that callers borrow for the duration of one call.

    `close()` is idempotent and safe while a borrow is active: new borrows see
    None immediately, and the handle is closed once the last borrower returns it.
    """

    def __init__(self, resource: Optional[T], closer: Optional[Callable[[T], Any]] = None):
        self._lock = threading.Lock()
        self._resource = resource
        self._closer = closer
        self._borrowers = 0
        self._pending_close: Optional[T] = None

    @property
    def is_open(self) -> bool:
        return self._resource is not None

    @contextmanager
    def borrow(self) -> Iterator[Optional[T]]:
        with self._lock:
            resource = self._resource
            if resource is not None:
                self._borrowers += 1
        try:
            yield resource
        finally:
            if resource is not None:
                to_close = None
                with self._lock:
                    self._borrowers -= 1
                    if self._borrowers == 0 and self._pending_close is not None:
                        to_close, self._pending_close = self._pending_close, None
                if to_close is not None:
                    self._close(to_close)

    def close(self) -> None:
        with self._lock:
            resource, self._resource = self._resource, None
            if resource is None:
                return
            if self._borrowers > 0:
                self._pending_close = resource
                return
        self._close(resource)

    def _close(self, resource: T) -> None:
        if self._closer is None:
            return
        try:
            self._closer(resource)
        except Exception as e:
            logger.warning("Failed to release %s: %s", type(resource).__name__, e)
