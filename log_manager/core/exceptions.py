# log_manager/core/exceptions.py


class LogManagerError(Exception):
    """Base class for all log manager errors."""


class ConfigurationError(LogManagerError, ValueError):
    """Raised synchronously when options or call arguments are invalid."""


class MissingFileError(LogManagerError, FileNotFoundError):
    """Raised (or reported) when a target file is absent."""
    def __init__(self, file_path: str):
        self.file_path = file_path
        super().__init__(f"File does not exist: {file_path}")


class TransientIOError(LogManagerError, OSError):
    """Raised when a directory listing, stat or liveness query fails."""
    def __init__(self, operation: str, cause: BaseException):
        self.operation = operation
        self.cause = cause
        super().__init__(f"{operation} failed: {cause}")
