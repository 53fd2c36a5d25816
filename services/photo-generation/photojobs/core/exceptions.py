from typing import Optional


class GenerationJobError(Exception):
    """
    Base class for all application-specific exceptions.
    captures the original exception for debugging if needed.
    """

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


# --- Job Exceptions (surfaced to the caller of a JobController) ---


class SubmissionError(GenerationJobError):
    """
    Raised when a generation request could not be handed to the edit endpoint,
    or the endpoint answered without a usable requestId.
    Never retried by the controller.
    """

    pass


class PollError(GenerationJobError):
    """
    Raised when a single status request fails (network error, non-2xx, garbage body).
    The poller tolerates a few of these in a row before giving up on the job.
    """

    pass


class RemoteFailure(GenerationJobError):
    """
    Raised when the provider reports FAILED/CANCELLED,
    or COMPLETED without a single image.
    """

    pass


class GenerationTimeout(GenerationJobError):
    """
    Raised when the local ceiling is reached before a terminal status.
    The remote job may still finish; nobody is listening anymore.
    """

    pass


# --- Proxy Exceptions (edit endpoint served by photojobs.main) ---


class ValidationException(GenerationJobError):
    """
    Raised when input parameters are invalid (e.g., unsupported model, no prompt).
    Maps to HTTP 400.
    """

    pass


class ProviderNotConfiguredError(GenerationJobError):
    """
    Raised when no fal.ai key is available.
    Maps to HTTP 500.
    """

    pass


class UpstreamError(GenerationJobError):
    """
    Raised when the fal.ai queue rejects or fails a call.
    """

    def __init__(
        self, message: str, status_code: Optional[int] = None, original_error: Optional[Exception] = None
    ):
        super().__init__(message, original_error)
        self.status_code = status_code
