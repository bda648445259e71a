"""Domain exceptions raised by the community services.

Each exception carries the HTTP status and machine-readable code used by
the error handler middleware to render a ``{"code", "message"}`` body.
Services raise these; routers never translate them by hand.
"""

from typing import Optional


class CommunityError(Exception):
    status_code: int = 500
    code: str = "internal"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class ValidationError(CommunityError):
    """Bad input shape, too-short title/body, too many tags."""

    status_code = 400
    code = "validation_error"


class NotFound(CommunityError):
    status_code = 404
    code = "not_found"


class TargetNotFound(NotFound):
    """The question or answer being voted on does not exist."""


class Forbidden(CommunityError):
    """Ownership or role violation."""

    status_code = 403
    code = "forbidden"


class SelfVoteForbidden(Forbidden):
    def __init__(self) -> None:
        super().__init__("You cannot vote on your own content")


class ContentFlagged(CommunityError):
    """Guardrail hard block (profanity or credentials in the submitted text)."""

    status_code = 409
    code = "content_flagged"

    def __init__(
        self,
        reason: str,
        severity: str = "medium",
        flagged_terms: Optional[list[str]] = None,
    ) -> None:
        self.reason = reason
        self.severity = severity
        self.flagged_terms = flagged_terms or []
        super().__init__(reason)

    def to_dict(self) -> dict:
        # Flagged terms are not echoed back
        return {
            "code": self.code,
            "message": self.message,
            "reason": self.reason,
            "severity": self.severity,
        }


class Conflict(CommunityError):
    """Concurrent-update loser or illegal state transition."""

    status_code = 409
    code = "conflict"
