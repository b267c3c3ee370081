"""Sync Session Context.

Binds the user and session a store is syncing for to every log entry
emitted while that session is active, using contextvars. Tasks created
inside the context inherit it, so background pumps and confirmations
log with the same fields.
"""

import uuid
from contextvars import ContextVar, Token
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


_session_id_var: ContextVar[str] = ContextVar("session_id", default="")
_user_id_var: ContextVar[str] = ContextVar("user_id", default="")
_extra_context_var: ContextVar[dict] = ContextVar("extra_context", default={})


def generate_session_id() -> str:
    """Generate a short unique session ID."""
    return uuid.uuid4().hex[:12]


def get_session_id() -> str:
    return _session_id_var.get()


def get_user_id() -> str:
    return _user_id_var.get()


def get_context_dict() -> dict[str, Any]:
    """Get all context variables as a dictionary for log binding."""
    ctx: dict[str, Any] = {}
    session_id = _session_id_var.get()
    if session_id:
        ctx["session_id"] = session_id
    user_id = _user_id_var.get()
    if user_id:
        ctx["user_id"] = user_id
    extra = _extra_context_var.get()
    if extra:
        ctx.update(extra)
    return ctx


@dataclass
class SyncContext:
    """Context manager for session-scoped logging context.

    Example:
        with SyncContext(user_id="user123"):
            logger.info("opening feed")  # includes session_id, user_id
    """

    user_id: str = ""
    session_id: str = ""
    extra: dict[str, Any] = field(default_factory=dict)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    _tokens: list[tuple[ContextVar, Token]] = field(default_factory=list, repr=False)

    def __post_init__(self):
        if not self.session_id:
            self.session_id = generate_session_id()

    def __enter__(self) -> "SyncContext":
        self._tokens = [
            (_session_id_var, _session_id_var.set(self.session_id)),
            (_user_id_var, _user_id_var.set(self.user_id)),
            (_extra_context_var, _extra_context_var.set(self.extra.copy())),
        ]
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        # Restore whatever an enclosing context had bound
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()

    @property
    def elapsed_ms(self) -> float:
        delta = datetime.now(timezone.utc) - self.started_at
        return delta.total_seconds() * 1000

    def bind(self, **kwargs: Any) -> None:
        """Add extra key-value pairs to the context."""
        current = _extra_context_var.get()
        _extra_context_var.set({**current, **kwargs})
        self.extra.update(kwargs)
