"""
Error taxonomy for minipush.

Recoverable errors send the supervisor back to waiting for the device.
Everything else is fatal and ends the process after cleanup.
"""


class SerialToolError(Exception):
    """Base class for all minipush errors."""


class DeviceConnectionError(SerialToolError):
    """Device unplugged or transport-level failure."""


class ProtocolError(SerialToolError):
    """Handshake or ack frame mismatch."""


class TransferTimeoutError(SerialToolError):
    """A bounded wait ran out before the operation finished."""


class TransportOpenError(SerialToolError):
    """The serial device could not be opened."""


class MissingResourceError(SerialToolError):
    """An expected handle (e.g. the open serial link) was absent."""

    def __init__(self, resource: str):
        super().__init__(f"missing resource: {resource}")
        self.resource = resource


class SerialIOError(SerialToolError):
    """Uncategorized I/O failure from the transport or the image file."""


# Errors that trigger the reconnect flow instead of terminating.
RECOVERABLE_ERRORS = (DeviceConnectionError, ProtocolError, TransferTimeoutError)
