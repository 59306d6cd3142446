"""
Per-request deadline shared by the transcoding and detection stages.
"""
import time
from typing import Callable, Optional

from .errors import SyncTimeout


class Deadline:
    """Monotonic deadline; a timeout of None never expires."""

    def __init__( self, timeout_seconds: Optional[float] = None, clock: Callable[[], float] = time.monotonic ):
        self.timeout_seconds = timeout_seconds;
        self._clock = clock;
        self._expires_at = None if timeout_seconds is None else clock() + timeout_seconds;

    def remaining( self ) -> Optional[float]:
        """Seconds left, None when unbounded, never negative."""
        if self._expires_at is None:
            return None;
        return max( 0.0, self._expires_at - self._clock() );

    def expired( self ) -> bool:
        return self._expires_at is not None and self._clock() >= self._expires_at;

    def check( self, what: str = "operation" ):
        """Raise SyncTimeout once the deadline has passed."""
        if self.expired():
            raise SyncTimeout( f"{what} exceeded the {self.timeout_seconds:.1f}s timeout" );
