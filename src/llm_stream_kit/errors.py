# src/llm_stream_kit/errors.py


class StreamKitError(Exception):
    """Base class for errors raised by llm-stream-kit."""


class TransportError(StreamKitError):
    """The upstream transport failed before or while streaming.

    Carries the HTTP status code when the failure was an error response.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MalformedChunkError(StreamKitError):
    """An upstream payload could not be decoded.

    Terminal for the stream that produced it. Other streams are unaffected.
    """

    def __init__(self, message: str, payload: str | None = None) -> None:
        super().__init__(message)
        self.payload = payload


class CircuitOpenError(StreamKitError):
    """The circuit breaker is open and rejected the call."""
