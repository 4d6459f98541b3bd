"""Request pool errors."""


class RequestPoolError(Exception):
    """Base error of the request pool."""


class RequestNotFoundError(RequestPoolError):
    """Rental request does not exist (admission only; removal treats it as a no-op)."""

    def __init__(self, request_id: int):
        self.request_id = request_id
        super().__init__(f"Rental request {request_id} not found")


class InvalidPoolTransitionError(RequestPoolError, ValueError):
    """Unknown removal reason or response status."""
