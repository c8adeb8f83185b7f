"""
Cancellation and deadline context passed to every operation.

An OpContext is handed from the caller through the coordinator to each
store call. Stores call ``ctx.check()`` before touching their backing
storage. Compensating actions run under ``ctx.detached()`` so a rollback
is never abandoned because the outer call was cancelled or timed out.
"""

import threading
import time
from typing import Optional

from .errors import Cancelled


class OpContext:
    """
    Deadline + cancellation carrier.

    Example:
        ctx = OpContext.with_timeout(5.0)
        coordinator.get_doc(ctx, "notes/readme.md")
    """

    def __init__(
        self,
        deadline: Optional[float] = None,
        *,
        parent: Optional["OpContext"] = None,
    ) -> None:
        """
        Args:
            deadline: Absolute ``time.monotonic()`` value after which the
                context is expired. None means no deadline.
            parent: Context whose cancellation propagates to this one.
        """
        self._deadline = deadline
        self._parent = parent
        self._cancelled = threading.Event()

    @classmethod
    def background(cls) -> "OpContext":
        """A context that never expires unless cancelled explicitly."""
        return cls()

    @classmethod
    def with_timeout(cls, seconds: Optional[float]) -> "OpContext":
        """A context that expires ``seconds`` from now (None = no deadline)."""
        if seconds is None:
            return cls()
        return cls(time.monotonic() + seconds)

    def child(self, seconds: Optional[float] = None) -> "OpContext":
        """Derive a context that inherits cancellation and the tighter deadline."""
        deadline = self._deadline
        if seconds is not None:
            own = time.monotonic() + seconds
            deadline = own if deadline is None else min(deadline, own)
        return OpContext(deadline, parent=self)

    def detached(self) -> "OpContext":
        """A context unaffected by this one's deadline or cancellation."""
        return OpContext()

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def deadline(self) -> Optional[float]:
        return self._deadline

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None if there is none."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def cancelled(self) -> bool:
        if self._cancelled.is_set():
            return True
        if self._parent is not None and self._parent.cancelled():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    def check(self) -> None:
        """Raise Cancelled if the context is cancelled or expired."""
        if self._cancelled.is_set() or (self._parent is not None and self._parent.cancelled()):
            raise Cancelled("operation cancelled")
        if self._deadline is not None and time.monotonic() >= self._deadline:
            raise Cancelled("operation deadline exceeded")
