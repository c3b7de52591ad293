"""
Short-lived request deduplication records.

Maps a request signature to the in-flight (or just finished) call that
served it. Entries expire after a fixed window. One instance per guard,
never process-wide.
"""
import time
from typing import Any, Callable, Optional

DEFAULT_WINDOW_SECONDS = 0.2


def request_signature(method: str, path: str, params: Optional[dict] = None) -> str:
    """Identity of a logical request: method, path and sorted params."""
    signature = f"{method.upper()} {path}"
    if params:
        query = "&".join(f"{k}={params[k]}" for k in sorted(params))
        signature = f"{signature}?{query}"
    return signature


class RequestDedupeCache:
    """In-memory (signature → value) store with TTL expiration."""

    def __init__(
        self,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic
    ):
        self.window_seconds = window_seconds
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}

    def put(self, signature: str, value: Any) -> None:
        """Record a request, stamped with the current time."""
        self._entries[signature] = (self._clock(), value)
        self._cleanup_expired()

    def get(self, signature: str) -> Optional[Any]:
        """Return the recorded value, or None if absent or outside the window."""
        entry = self._entries.get(signature)
        if entry is None:
            return None
        recorded_at, value = entry
        if self._clock() - recorded_at >= self.window_seconds:
            del self._entries[signature]
            return None
        return value

    def discard(self, signature: str) -> None:
        self._entries.pop(signature, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        self._cleanup_expired()
        return len(self._entries)

    def _cleanup_expired(self) -> None:
        """Remove all expired entries."""
        now = self._clock()
        expired = [k for k, (at, _) in self._entries.items() if now - at >= self.window_seconds]
        for k in expired:
            del self._entries[k]
