"""Domain exceptions for the points ledger.

Every error a service can raise on purpose derives from ``ChoreChampError``
and carries the HTTP status the API layer answers with.
"""

from fastapi import status


class ChoreChampError(Exception):
    """Base exception for all expected ledger and workflow failures."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(ChoreChampError):
    """Malformed input: bad point range, oversized text, unknown type."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation_error"


class ForbiddenError(ChoreChampError):
    """Role or ownership check failed."""

    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"


class NotFoundError(ChoreChampError):
    """Referenced chore, reward, redemption or member is absent or out of scope."""

    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class AlreadyCompletedError(ChoreChampError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "already_completed"

    def __init__(self, chore_id):
        self.chore_id = chore_id
        super().__init__("Chore is already completed")


class InvalidStateError(ChoreChampError):
    """A state-machine precondition does not hold."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "invalid_state"


class UndoWindowExpiredError(ChoreChampError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "undo_window_expired"

    def __init__(self, window_hours: int):
        self.window_hours = window_hours
        super().__init__(f"Completions can only be undone within {window_hours} hours")


class InsufficientBalanceError(ChoreChampError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "insufficient_balance"

    def __init__(self, balance: int, required: int):
        self.balance = balance
        self.required = required
        super().__init__(f"Not enough points ({balance} available, {required} required)")


class ConcurrencyConflictError(ChoreChampError):
    """Lock wait timed out or the transaction lost a serialization race."""

    status_code = status.HTTP_409_CONFLICT
    code = "concurrency_conflict"
