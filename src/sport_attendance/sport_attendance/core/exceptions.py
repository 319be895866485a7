class DomainError(Exception):
    """Base exception for business rule violations.

    ``code`` is a stable machine-readable reason and ``status`` the HTTP status
    the controller layer maps it to.
    """

    code = "domain_error"
    status = 400


class ValidationError(DomainError):
    """Raised when input data is invalid or violates domain rules."""

    code = "validation_error"


class NotFoundError(DomainError):
    """Raised when a session, section or user does not exist."""

    code = "not_found"
    status = 404


class ForbiddenError(DomainError):
    """Raised when an actor lacks rights over a session."""

    code = "forbidden"
    status = 403


class ConflictError(DomainError):
    """Raised when a teacher already has an active session."""

    code = "session_conflict"
    status = 409

    def __init__(self, message: str, *, session_id: int | None = None):
        super().__init__(message)
        self.session_id = session_id


class InvalidStateError(DomainError):
    """Raised when operating on a session that is no longer active."""

    code = "invalid_state"


class InvalidCodeError(DomainError):
    """Raised when no active session's code matches (wrong or expired)."""

    code = "invalid_code"


class SelfCheckinError(DomainError):
    """Raised when a teacher tries to check in to their own session."""

    code = "self_checkin"


class DuplicateCheckinError(DomainError):
    """Raised when the student already has a record for the session."""

    code = "duplicate_checkin"
    status = 409


class ChainBrokenError(DomainError):
    """Audit-only: a student's hash chain failed verification."""

    code = "chain_broken"
    status = 409

    def __init__(self, message: str, *, broken_at_index: int, broken_at_id: int):
        super().__init__(message)
        self.broken_at_index = broken_at_index
        self.broken_at_id = broken_at_id


class LedgerBusyError(DomainError):
    """Raised when a student's chain head kept moving and the append gave up.

    The check-in was not recorded; the client may simply try again.
    """

    code = "ledger_busy"
    status = 409


class StaleChainError(Exception):
    """Storage signal: the student's chain head moved since it was read.

    Never surfaced to callers; the ledger re-reads and retries.
    """
