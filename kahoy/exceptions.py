"""Exceptions related to kahoy."""

__all__ = [
    "KahoyException",
    "NotValidException",
    "ConfigException",
    "MissingException",
    "FileSystemException",
    "CommandException",
    "HookException",
    "KahoyTimeoutException",
    "ProtocolException",
    "ProcessException",
]


class KahoyException(Exception):
    """Generic base exception used for this library."""


class NotValidException(KahoyException):
    """Raised when configuration or loaded data violates an invariant."""


class ConfigException(NotValidException):
    """Raised when the application configuration file is not valid."""


class MissingException(KahoyException):
    """Raised when a lookup by id in a repository found nothing."""


class FileSystemException(KahoyException):
    """Raised when reading, walking or creating files failed."""


class CommandException(KahoyException):
    """Raised when there is a failure running a subcommand."""

    def __init__(
        self, message: str, returncode: int | None = None, stderr: str = ""
    ) -> None:
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class HookException(CommandException):
    """Raised when a group pre or post hook failed."""


class KahoyTimeoutException(KahoyException):
    """Raised when an operation exceeded its deadline."""


class ProtocolException(KahoyException):
    """Raised when a returned payload is missing fields or can't be parsed."""


class ProcessException(KahoyException):
    """Raised when a resource processor in a chain failed.

    The resources returned by the last successful processor are kept so
    callers can inspect how far the chain got.
    """

    def __init__(self, message: str, resources: list) -> None:
        super().__init__(message)
        self.resources = resources
