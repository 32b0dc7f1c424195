"""
btprov - Cancellation Context

A Context carries a single cancellation signal from the top-level caller down
to every blocking loop. Timeouts are deadlines on the same signal.

Usage:
    ctx = Context().with_timeout(600)

    while True:
        if not ctx.wait(1.0):  # cancellable replacement for time.sleep(1.0)
            raise ctx.err()
        ...

Cancelling a parent cancels all of its children. Cancelling a child leaves
the parent untouched.
"""

import threading
import time
from typing import List, Optional

from btprov.exceptions.cancelled_exception import (
    DeadlineExceededException,
    OperationCancelledException,
)


class Context:

    def __init__(self, parent: Optional['Context'] = None, deadline: Optional[float] = None):
        """
        Args:
            parent: Context whose cancellation propagates to this one
            deadline: time.monotonic() value after which this context is done
        """
        self._lock = threading.Lock()
        self._event = threading.Event()
        self._children: List['Context'] = []
        self._err: Optional[OperationCancelledException] = None

        if parent is not None and parent.deadline is not None:
            if deadline is None or parent.deadline < deadline:
                deadline = parent.deadline
        self.deadline = deadline

        self._parent = parent
        if parent is not None:
            parent._add_child(self)

    def with_timeout(self, seconds: float) -> 'Context':
        """Return a child context that is done after ``seconds``."""
        return Context(parent=self, deadline=time.monotonic() + seconds)

    def child(self) -> 'Context':
        return Context(parent=self)

    def _add_child(self, child: 'Context') -> None:
        with self._lock:
            cancelled = self._err
            if cancelled is None:
                self._children.append(child)
        if cancelled is not None:
            child._cancel_with(cancelled)

    def _cancel_with(self, err: OperationCancelledException) -> None:
        with self._lock:
            if self._err is not None:
                return
            self._err = err
            children, self._children = self._children, []
        self._event.set()
        for child in children:
            child._cancel_with(err)

    def cancel(self) -> None:
        """Cancel this context and every child. Safe to call more than once."""
        self._cancel_with(OperationCancelledException())

    def _check_deadline(self) -> None:
        if self.deadline is not None and self._err is None and time.monotonic() >= self.deadline:
            self._cancel_with(DeadlineExceededException())

    def done(self) -> bool:
        self._check_deadline()
        return self._event.is_set()

    def err(self) -> Optional[OperationCancelledException]:
        """The reason this context is done, or None while it is still live."""
        self._check_deadline()
        return self._err

    def remaining(self) -> Optional[float]:
        """Seconds until the deadline, or None if there is no deadline."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def wait(self, seconds: float) -> bool:
        """
        Sleep for up to ``seconds``, waking early if the context is cancelled.

        Returns:
            True if the full interval elapsed and the context is still live,
            False if the context is done.
        """
        if self.done():
            return False
        remaining = self.remaining()
        timeout = seconds if remaining is None else min(seconds, remaining)
        self._event.wait(timeout)
        return not self.done()
