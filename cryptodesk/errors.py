# cryptodesk/errors.py
"""
Typed failures raised by the stores, the settlement engine and intake.
The HTTP layer maps each of them to a status code in main.py.
"""


class CryptodeskError(Exception):
    """Base class for every domain failure."""

    status_code = 400


class ValidationError(CryptodeskError):
    """Malformed or missing input. Nothing is persisted."""

    status_code = 422


class NotFoundError(CryptodeskError):
    """Unknown user, asset or transaction id."""

    status_code = 404


class InvalidStateError(CryptodeskError):
    """A transition was attempted on a transaction that is no longer pending."""

    status_code = 409


class InsufficientBalanceError(CryptodeskError):
    """Applying a delta would leave a holding or cash balance below zero."""

    status_code = 409


class StoreUnavailableError(CryptodeskError):
    """The database could not be reached or refused the mutation."""

    status_code = 503
