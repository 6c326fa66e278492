import threading


class IdentityGenerator:
    """Hands out integer ids, one strictly increasing sequence per entity kind.

    Sequences start at 1 and an issued id is never handed out again, even
    after the row carrying it has been deleted. Nothing is persisted, so a
    fresh generator starts over unless it is told about existing ids through
    :meth:`observe`.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last: dict[str, int] = {}

    def next_id(self, kind: str) -> int:
        with self._lock:
            value = self._last.get(kind, 0) + 1
            self._last[kind] = value
            return value

    def peek(self, kind: str) -> int:
        with self._lock:
            return self._last.get(kind, 0)

    def observe(self, kind: str, value: int) -> None:
        with self._lock:
            if value > self._last.get(kind, 0):
                self._last[kind] = value
