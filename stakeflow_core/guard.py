"""
Per-account reentrancy guard.

Every state-changing engine operation runs inside ``guard.enter(account)``.
While the operation is in flight (including its external transfer), any
nested operation for the same account is rejected with
:class:`~stakeflow_core.errors.ReentrantCall`.  The marker is cleared when
the outer operation returns or raises.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from stakeflow_core.errors import ReentrantCall


class ReentrancyGuard:

    def __init__(self) -> None:
        self._in_flight: set[str] = set()

    @contextmanager
    def enter(self, account: str) -> Iterator[None]:
        if account in self._in_flight:
            raise ReentrantCall(f"Operation already in flight for {account}")
        self._in_flight.add(account)
        try:
            yield
        finally:
            self._in_flight.discard(account)

    def is_in_flight(self, account: str) -> bool:
        return account in self._in_flight

    @property
    def active_count(self) -> int:
        return len(self._in_flight)
