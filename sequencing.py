import threading
from typing import Optional

_Key = tuple[str, str, str]


class LatestRequestGuard:
    """Last-request-wins bookkeeping for views that refetch on filter changes.

    A client tags each fetch for a view with an increasing sequence number,
    and optionally a client id that is stable for one page load. ``begin``
    records the fetch; ``is_current`` tells, once it is done, whether a
    newer fetch for the same view has started meanwhile, in which case the
    older result must be discarded rather than applied. ``finish`` must be
    called for every ``begin``.

    Ordering only matters between overlapping fetches. Once nothing is in
    flight for a key its state is dropped, so a reloaded page or a second
    device whose counter starts again at 1 is not held to an old number.
    """

    def __init__(self) -> None:
        self._latest: dict[_Key, int] = {}
        self._in_flight: dict[_Key, list[int]] = {}
        self._lock = threading.Lock()

    def begin(self, user_id: str, view: str, seq: int, client: str = "") -> None:
        key = (user_id, client, view)
        with self._lock:
            running = self._in_flight.setdefault(key, [])
            latest: Optional[int] = self._latest.get(key)
            if latest is None or seq > latest:
                self._latest[key] = seq
            running.append(seq)

    def is_current(self, user_id: str, view: str, seq: int, client: str = "") -> bool:
        with self._lock:
            return self._latest.get((user_id, client, view), seq) <= seq

    def finish(self, user_id: str, view: str, seq: int, client: str = "") -> None:
        key = (user_id, client, view)
        with self._lock:
            running = self._in_flight.get(key, [])
            if seq in running:
                running.remove(seq)
            if not running:
                self._in_flight.pop(key, None)
                self._latest.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._latest)
