class ClientError(Exception):
    """Base class for every failure raised by the API client."""


class TransportError(ClientError):
    """The request never produced an HTTP response."""


class ApiError(ClientError):
    """The server answered with a non-success status.

    Parameters:
        http_status: The HTTP status code.
        server_message: The server's error detail, body text or reason phrase.
    """

    def __init__(self, http_status: int, server_message: str):
        super().__init__(server_message)
        self.http_status = http_status
        self.server_message = server_message

    @property
    def is_client_error(self) -> bool:
        return 400 <= self.http_status < 500

    @property
    def is_server_error(self) -> bool:
        return self.http_status >= 500

    def __repr__(self) -> str:
        return f"ApiError(http_status={self.http_status}, server_message={self.server_message!r})"


class ResponseShapeError(ClientError):
    """The response body did not match the expected schema."""


class MissingIdentifierError(ClientError):
    """An operation was attempted without the identifier it targets."""
