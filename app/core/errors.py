"""
Error taxonomy for the seat inventory core.

Services raise these; the HTTP layer maps each kind to a status code
(see ``register_error_handlers`` in ``app.main``).
"""
from typing import Iterable, Optional
from uuid import UUID


class SeatingError(Exception):
    """Base class for every error the core reports to its callers."""

    kind = "error"
    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"detail": self.message, "error": self.kind}


class InvalidRequestError(SeatingError):
    """Malformed input, empty seat set, cross-event seat set."""

    kind = "invalid"
    status_code = 400


class NotFoundError(SeatingError):
    """Referenced event/venue/hold/seat is missing or soft-deleted."""

    kind = "not_found"
    status_code = 404


class ForbiddenError(SeatingError):
    """Caller is not the venue manager / event organizer / hold owner."""

    kind = "forbidden"
    status_code = 403


class ConflictError(SeatingError):
    """
    A state-machine precondition failed.

    ``offenders`` lists the seat ids that caused the failure, when known.
    ``current_state`` is the hold state observed, for hold-level conflicts.
    """

    kind = "conflict"
    status_code = 409

    def __init__(
        self,
        message: str,
        offenders: Optional[Iterable[UUID]] = None,
        current_state: Optional[str] = None,
    ):
        super().__init__(message)
        self.offenders = sorted(offenders or [], key=str)
        self.current_state = current_state

    def to_dict(self) -> dict:
        body = super().to_dict()
        if self.offenders:
            body["offenders"] = [str(o) for o in self.offenders]
        if self.current_state:
            body["state"] = self.current_state
        return body


class InternalInconsistencyError(SeatingError):
    """A seat CAS failed under a pending hold; state was mutated outside protocol."""

    kind = "internal_inconsistency"
    status_code = 500
