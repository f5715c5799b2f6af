"""Core exceptions for the relay."""

from typing import Optional


class ProxyError(Exception):
    """Base exception for relay errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(ProxyError):
    """Raised when there's an issue with the configuration."""
    pass


class InvalidRequestError(ProxyError):
    """Raised when an incoming request is invalid.

    Nothing has been sent to the backend when this is raised, so no
    lifecycle event is recorded for it.
    """

    def __init__(
        self,
        message: str,
        code: str = "invalid_request",
        param: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.param = param


class ModelNotFoundError(InvalidRequestError):
    """Raised when a requested model is not in the catalog."""

    def __init__(self, model: str) -> None:
        super().__init__(
            f"Model '{model}' is not supported",
            code="model_not_found",
            param="model",
        )
        self.model = model


class BackendCallError(ProxyError):
    """A backend call returned a non-success status or failed in transport."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TranslationPipelineError(ProxyError):
    """A chunked translation run was aborted."""

    def __init__(self, message: str, segment_index: Optional[int] = None) -> None:
        super().__init__(message)
        self.segment_index = segment_index


class StreamTranscodeError(ProxyError):
    """Pumping or writing the SSE stream failed."""
    pass
