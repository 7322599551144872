"""Exceptions raised by the check-in agent."""


class CheckinError(Exception):
    """Base class for check-in agent errors."""


class CaptureError(CheckinError):
    """The camera could not be opened or a frame could not be read.

    Blocks the session: the controller returns to idle and the operator
    has to start scanning again.
    """


class PersistenceError(CheckinError):
    """The durable local store could not be read or written."""
