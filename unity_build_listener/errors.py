# errors.py


class ListenerError(Exception):
    """Base class for every error raised by the build listener."""


class ConfigurationError(ListenerError):
    """A required setting, executable or path is missing. Fatal at startup."""


class TransientToolError(ListenerError):
    """An external command or cloud client call failed.

    Never propagated into the main loop: call sites convert it into a
    boolean or status string for the next pipeline stage.
    """

    def __init__(self, message: str, command=None, output: str = ""):
        super().__init__(message)
        self.command = command
        self.output = output


class MessageParseError(ListenerError):
    """The queue message body could not be decoded into a build request."""


class UnrecognizedCommandError(ListenerError):
    """The request carried a command this listener does not handle."""

    def __init__(self, command):
        super().__init__(f"Unrecognized command: {command!r}")
        self.command = command


class RequestValidationError(ListenerError):
    """The request decoded fine but is missing a field its command needs."""
