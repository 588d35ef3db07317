"""Custom exceptions for the claims ledger."""

class ClaimdeskError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        return rv

class ValidationError(ClaimdeskError):
    """Malformed or missing input (e.g. a reversal reason that is too short)."""
    def __init__(self, message, payload=None):
        super().__init__(message, 400, payload)

class NotFoundError(ClaimdeskError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)

class InvalidStateError(ClaimdeskError):
    """Operation is not legal for the entry's current lifecycle state."""
    def __init__(self, message, payload=None):
        super().__init__(message, 409, payload)

class ImmutableEntryError(InvalidStateError):
    """Raised when deleting or editing an approved or declined entry."""
    def __init__(self, line_item_id, status):
        status_str = status.value if hasattr(status, 'value') else str(status)
        message = (
            f"Cannot delete {status_str} item #{line_item_id}: "
            f"{status_str} entries are immutable, create a reversal instead"
        )
        super().__init__(message, payload={'line_item_id': line_item_id, 'line_status': status_str})
