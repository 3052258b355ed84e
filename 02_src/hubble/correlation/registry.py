"""Request-scoped registry of the active root envelope."""

import asyncio
import concurrent.futures
from contextvars import ContextVar, Token
from dataclasses import dataclass, field
from typing import Protocol, Union

from ..models import GeneralLog

PendingWrite = Union[asyncio.Future, concurrent.futures.Future]


@dataclass
class RequestScope:
    """Correlation state of one inbound request."""

    root: GeneralLog | None = None
    pending: list[PendingWrite] = field(default_factory=list)

    @property
    def root_id(self) -> str | None:
        return self.root.id if self.root else None


_current_scope: ContextVar[RequestScope | None] = ContextVar(
    "hubble_request_scope", default=None
)


def current_root_id() -> str | None:
    """Id of the root record of the request in flight, if any."""
    scope = _current_scope.get()
    return scope.root_id if scope else None


class ICorrelationRegistry(Protocol):
    """Holds the root record of the request in flight."""

    def open(self) -> Token:
        """Start a request scope in the current context."""
        ...

    def register(self, log_id: str, root: GeneralLog) -> None:
        """Make a persisted root the correlation target of this request."""
        ...

    def current(self) -> GeneralLog | None:
        """The registered root, or None outside a tracked request."""
        ...

    def track(self, write: PendingWrite) -> None:
        """Remember a child write so the request can wait for it."""
        ...

    async def wait_pending(self) -> None:
        """Wait for every tracked child write of this request."""
        ...

    def close(self, token: Token) -> None:
        """End the scope opened by open()."""
        ...


class CorrelationRegistry:
    """Context-variable backed registry; one scope per request."""

    def open(self) -> Token:
        return _current_scope.set(RequestScope())

    def register(self, log_id: str, root: GeneralLog) -> None:
        if not log_id or root.id != log_id:
            raise ValueError("Root must be persisted before it is registered")
        scope = _current_scope.get()
        if scope is None:
            raise RuntimeError("No request scope is open")
        scope.root = root

    def current(self) -> GeneralLog | None:
        scope = _current_scope.get()
        return scope.root if scope else None

    def track(self, write: PendingWrite) -> None:
        scope = _current_scope.get()
        if scope is not None:
            scope.pending.append(write)

    async def wait_pending(self) -> None:
        scope = _current_scope.get()
        if scope is None or not scope.pending:
            return
        writes, scope.pending = scope.pending, []
        await asyncio.gather(
            *[
                asyncio.wrap_future(w) if isinstance(w, concurrent.futures.Future) else w
                for w in writes
            ],
            return_exceptions=True,
        )

    def close(self, token: Token) -> None:
        try:
            _current_scope.reset(token)
        except ValueError:
            _current_scope.set(None)
