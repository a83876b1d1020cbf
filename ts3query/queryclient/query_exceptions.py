"""Custom exceptions for the ServerQuery client module."""


class ServerQueryError(Exception):
    """Base class for every error raised by the ServerQuery client."""


class ConfigurationError(ServerQueryError, ValueError):
    """Raised when a session is configured with an invalid option."""


class QueryConnectionError(ServerQueryError, ConnectionError):
    """Raised when the TCP connection to the server cannot be established."""


class HandshakeError(ServerQueryError):
    """Raised when the server does not greet us with the expected header."""


class LineTooLongError(ServerQueryError):
    """Raised when a line exceeds the configured maximum line size."""


class DisconnectedError(ServerQueryError):
    """Raised when the connection was lost while a command was in flight."""


class UnexpectedEndOfStreamError(DisconnectedError):
    """Raised when the server closed the stream without an error."""


class NotConnectedError(DisconnectedError):
    """Raised when a command is issued on a session that is not connected."""


class DecodeError(ServerQueryError):
    """Raised when a response or notification cannot be decoded."""


class QueryError(ServerQueryError):
    """Error reported by the server in a response trailer.

    :param error_id: The numeric error identifier, 0 means success
    :param message: The short message token
    :param extra: Any free text following the message token
    """

    def __init__(self, error_id: int, message: str, extra: str = "") -> None:
        self.error_id = error_id
        self.message = message
        self.extra = extra
        super().__init__(str(self))

    def __str__(self) -> str:
        text = f"{self.message} (id={self.error_id})"
        if self.extra:
            text = f"{text}: {self.extra}"
        return text

    def __repr__(self) -> str:
        return (
            f"QueryError(error_id={self.error_id!r}, message={self.message!r}, "
            f"extra={self.extra!r})"
        )
