"""Exception hierarchy for the combination selector.

Each error carries a stable ``error_code`` and a ``details`` dict so the API
layer can serialise it without string parsing.  Which layer raises what:

* :class:`InvalidSelectionError`: key generation found zero valid picks.
  Fatal to that call; surfaced to the caller.
* :class:`InvalidSplitError`: requested favorite/underdog counts cannot be
  reconciled with the match count.  The engine never raises it (it rescales
  or clamps and records a warning); only strict-mode callers do.
* :class:`EmptyInputError`: zero usable matches where a session needs some.
* :class:`SessionExhaustedError`: no unused combination remains.
* :class:`SessionStateError` / :class:`SessionNotFoundError`: lifecycle misuse.
"""

from typing import Any, Dict, Optional


class SelectorError(Exception):
    """Base exception for all selector errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.message,
            "error_code": self.error_code,
            "details": self.details,
        }


class EmptyInputError(SelectorError):
    """Raised when no usable (non-live, well-formed) matches remain."""

    def __init__(self, message: str = "No usable matches", dropped: int = 0, **kwargs):
        super().__init__(message, error_code="EMPTY_INPUT", **kwargs)
        self.details["dropped_records"] = dropped


class InvalidSplitError(SelectorError):
    """Raised in strict mode when a favorite/underdog request had to be adjusted."""

    def __init__(
        self,
        message: str,
        requested: Optional[Dict[str, Any]] = None,
        resolved: Optional[Dict[str, Any]] = None,
        **kwargs,
    ):
        super().__init__(message, error_code="INVALID_SPLIT", **kwargs)
        if requested is not None:
            self.details["requested"] = requested
        if resolved is not None:
            self.details["resolved"] = resolved


class InvalidSelectionError(SelectorError):
    """Raised when a combination key cannot be built from any pick."""

    def __init__(self, message: str, pick_count: int = 0, **kwargs):
        super().__init__(message, error_code="INVALID_SELECTION", **kwargs)
        self.details["pick_count"] = pick_count


class SessionExhaustedError(SelectorError):
    """Raised when a session has no further unique combinations."""

    def __init__(self, session_id: str, used: int, valid: int, **kwargs):
        message = (
            f"Session {session_id} exhausted: {used} of {valid} "
            f"valid combinations already used"
        )
        super().__init__(message, error_code="SESSION_EXHAUSTED", **kwargs)
        self.details.update({
            "session_id": session_id,
            "used_combinations": used,
            "valid_combinations": valid,
        })


class SessionStateError(SelectorError):
    """Raised on an invalid session lifecycle transition."""

    def __init__(self, message: str, status: Optional[str] = None, **kwargs):
        super().__init__(message, error_code="SESSION_STATE_ERROR", **kwargs)
        if status:
            self.details["status"] = status


class SessionNotFoundError(SelectorError):
    """Raised when a session id is not registered."""

    def __init__(self, session_id: str, **kwargs):
        super().__init__(
            f"Session {session_id} not found", error_code="SESSION_NOT_FOUND", **kwargs
        )
        self.details["session_id"] = session_id
