"""
Caller identity and re-entrancy guards.

Every mutating entry point receives an explicit Principal and compares it
against the principal it was configured with. There is no ambient
"current caller"; the token travels with the call.

Example:
    from vault_engine.core.access import Principal, require_caller

    ENGINE = Principal('strategy-engine')
    require_caller(caller, ENGINE, 'record_compound')
"""
import functools
import logging
import threading
from dataclasses import dataclass
from typing import Callable, TypeVar

from vault_engine.core.exceptions import NotAuthorized, ReentrantCall

logger = logging.getLogger('CORE.ACCESS')

F = TypeVar('F', bound=Callable)


@dataclass(frozen=True)
class Principal:
    """Authenticated caller token."""
    name: str

    def __str__(self) -> str:
        return self.name


def require_caller(caller: Principal, expected: Principal, operation: str) -> None:
    """
    Reject the call unless caller is the expected principal.

    Raises:
        NotAuthorized: If caller differs from expected
    """
    if caller != expected:
        logger.error(
            f"Unauthorized call to {operation}: caller={caller}, expected={expected}"
        )
        raise NotAuthorized(
            f"{operation} requires caller '{expected}', got '{caller}'"
        )


class NonReentrantGuard:
    """
    Non-blocking mutual exclusion for an entry point.

    Entering while the guard is held raises ReentrantCall rather than
    waiting, which rejects both recursive calls and a second concurrent
    caller.

    Usage:
        guard = NonReentrantGuard('execute_cycle')
        with guard:
            ...
    """

    def __init__(self, name: str):
        self.name = name
        self._lock = threading.Lock()

    @property
    def locked(self) -> bool:
        return self._lock.locked()

    def __enter__(self) -> 'NonReentrantGuard':
        if not self._lock.acquire(blocking=False):
            logger.error(f"Re-entrant call rejected: {self.name}")
            raise ReentrantCall(f"{self.name} is already executing")
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self._lock.release()
        return False


def non_reentrant(method: F) -> F:
    """
    Method decorator sharing one NonReentrantGuard per instance.

    All decorated methods of an instance share the guard, so a mutating
    entry point cannot call back into another one on the same object.
    """
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        guard = self.__dict__.get('_reentrancy_guard')
        if guard is None:
            guard = NonReentrantGuard(type(self).__name__)
            self.__dict__['_reentrancy_guard'] = guard
        with guard:
            return method(self, *args, **kwargs)

    return wrapper  # type: ignore[return-value]
