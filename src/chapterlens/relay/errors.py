"""Errors raised by the chat relay before or during streaming."""


class RelayError(Exception):
    """Base relay failure that maps onto an HTTP status and ``{error}`` body."""

    status: int = 500

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status is not None:
            self.status = status

    def to_payload(self) -> dict[str, str]:
        return {"error": self.message}


class InputError(RelayError):
    """Malformed request body or no resolvable API key."""

    status = 400


class UpstreamRejected(RelayError):
    """Upstream answered with a non-success status; relayed verbatim."""

    def __init__(self, status: int, body: str) -> None:
        super().__init__(body or "Upstream chat provider returned an error", status=status)


class UpstreamUnavailable(RelayError):
    """Upstream body channel missing, or the transport failed."""

    status = 502


class InternalError(RelayError):
    """Anything unexpected while setting up the relay."""

    status = 500
