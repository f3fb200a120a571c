"""Failure taxonomy for the message intake pipeline.

Only ``PersistenceFailure`` is allowed to escape the pipeline; every other
failure is recovered or downgraded to a warning by the component that
catches it.
"""


class IntakeError(Exception):
    """Base class for intake pipeline failures."""


class ClassificationFailure(IntakeError):
    """Language inference failed, timed out, or returned unusable output."""


class PersistenceFailure(IntakeError):
    """The inbound message could not be recorded."""


class TicketCreationFailure(IntakeError):
    """A maintenance ticket could not be created for a persisted message."""


class DeliveryFailure(IntakeError):
    """An outbound channel message could not be delivered."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class LookupFailure(IntakeError):
    """The knowledge store could not be queried."""
