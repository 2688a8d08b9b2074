"""Business-rule failures raised by the scheduling engine."""


class BookingError(Exception):
    """Base class for scheduling failures surfaced to the caller."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(BookingError):
    """A specialty, specialist or appointment does not exist."""

    status_code = 404


class ValidationFailure(BookingError):
    """The request breaks an input or state-machine rule."""

    status_code = 400


class SlotConflict(BookingError):
    """The requested slot is already occupied."""

    status_code = 409
